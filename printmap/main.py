#!/usr/bin/env python3
"""
printmap - layered 3D print models from OpenStreetMap
Web service that turns a selected map region into a multi-color 3MF model.
"""

import os
import time
import traceback
import uuid

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

from printmap.utils.app_config import (
    get_cors_origins,
    get_debug_enabled,
    get_default_model_size_mm,
    get_export_folder,
    get_file_ttl_seconds,
    parse_env_bool,
)
from printmap.utils.mesh_generator import generate_model, model_to_dict
from printmap.utils.model_exporter import THREE_MF_EXTENSION, THREE_MF_MIME, export_to_3mf, export_to_stl
from printmap.utils.models import BoundingBox
from printmap.utils.osm_fetcher import fetch_osm_elements, parse_elements

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": get_cors_origins()}})

app.config['EXPORT_FOLDER'] = get_export_folder()
app.config['MAX_CONTENT_LENGTH'] = 64 * 1024 * 1024  # Overpass payloads can be large


def cleanup_old_files(directory, max_age_seconds):
    """Delete exports older than `max_age_seconds`; returns how many were removed."""
    cutoff = time.time() - max_age_seconds
    removed = 0
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.is_file() and entry.stat().st_mtime < cutoff:
                    os.remove(entry.path)
                    removed += 1
    except FileNotFoundError:
        return 0
    except OSError as e:
        print(f"[WARN] Cleanup failed for {directory}: {e}")
    if removed:
        print(f"[INFO] Removed {removed} stale export(s) from {directory}")
    return removed


def build_unique_path(directory, original_filename, required_ext):
    """Build unique storage path while preserving user-facing download name."""
    os.makedirs(directory, exist_ok=True)
    sanitized = secure_filename(original_filename or '') or f"model.{required_ext}"
    if not sanitized.endswith(f".{required_ext}"):
        sanitized = f"{sanitized}.{required_ext}"
    stem = sanitized[:-(len(required_ext) + 1)]
    unique_name = f"{stem}_{uuid.uuid4().hex[:10]}.{required_ext}"
    return sanitized, os.path.join(directory, unique_name)


def model_from_request(data):
    """Rebuild the model described by a generate/export request body."""
    bounds = BoundingBox.from_dict(data.get('bounds') or {})
    elements = parse_elements(data.get('elements', []))
    model_size_mm = data.get('model_size_mm')
    if model_size_mm is None:
        model_size_mm = get_default_model_size_mm()
    return generate_model(elements, bounds, model_size_mm)


@app.route('/api/osm-features', methods=['POST'])
def get_osm_features():
    """Fetch raw OpenStreetMap elements for a bounding box."""
    try:
        data = request.get_json() or {}
        bounds = BoundingBox.from_dict(data.get('bounds') or {})
        use_cache = parse_env_bool(data.get('use_cache'), default=True)

        elements = fetch_osm_elements(
            bounds.north,
            bounds.south,
            bounds.east,
            bounds.west,
            use_cache=use_cache
        )

        return jsonify({
            'success': True,
            'elements': elements
        })

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        print(f"[ERROR] /api/osm-features failed: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/generate', methods=['POST'])
def generate():
    """Generate the layered preview model for a region."""
    try:
        t_start = time.time()
        data = request.get_json() or {}

        model = model_from_request(data)
        payload = model_to_dict(model)

        t_total = time.time() - t_start
        print(f"[PERF] Total /api/generate time: {t_total:.3f}s")

        return jsonify({
            'success': True,
            'model': payload,
            'metadata': payload['metadata'],
            'timings': {'total_seconds': round(t_total, 4)}
        })

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        print(f"[ERROR] /api/generate failed: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/export/3mf', methods=['POST'])
def export_3mf_route():
    """Export the region as a multi-material 3MF package."""
    try:
        cleanup_old_files(app.config['EXPORT_FOLDER'], get_file_ttl_seconds())
        data = request.get_json() or {}
        model = model_from_request(data)

        filename, filepath = build_unique_path(
            app.config['EXPORT_FOLDER'], data.get('filename', 'model.3mf'), THREE_MF_EXTENSION)
        export_to_3mf(model, filepath, name=filename[:-(len(THREE_MF_EXTENSION) + 1)])

        return send_file(
            filepath,
            mimetype=THREE_MF_MIME,
            as_attachment=True,
            download_name=filename
        )

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        print(f"[ERROR] /api/export/3mf failed: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/export/stl', methods=['POST'])
def export_stl_route():
    """Export the region as a single-body STL."""
    try:
        cleanup_old_files(app.config['EXPORT_FOLDER'], get_file_ttl_seconds())
        data = request.get_json() or {}
        model = model_from_request(data)

        filename, filepath = build_unique_path(
            app.config['EXPORT_FOLDER'], data.get('filename', 'model.stl'), 'stl')
        export_to_stl(model, filepath)

        return send_file(
            filepath,
            mimetype='application/sla',
            as_attachment=True,
            download_name=filename
        )

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        print(f"[ERROR] /api/export/stl failed: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/health', methods=['GET'])
def health():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'service': 'printmap'
    })


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5001, debug=get_debug_enabled())
