# status: complete

from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS
import os
import sys

backend_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.append(backend_dir)

from automation.artifacts import SCREENSHOT_SUBDIR
from route.automation_route import automation_bp
from route.research_route import research_bp
from utils.cancellation_manager import cancellation_manager
from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)


def create_app():
    """Create and configure the Flask application"""
    app = Flask(__name__)

    cors_origins = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
    CORS(app, origins=[origin.strip() for origin in cors_origins])

    app.register_blueprint(automation_bp)
    app.register_blueprint(research_bp)

    @app.route(f'/{SCREENSHOT_SUBDIR}/<path:filename>')
    def browser_screenshot(filename):
        screenshot_dir = (Config.get_artifact_dir() / SCREENSHOT_SUBDIR).resolve()
        return send_from_directory(screenshot_dir, filename, mimetype='image/png')

    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'message': 'Taskpilot backend is running',
            'planner_model': Config.get_planner_model(),
            'driver_model': Config.get_driver_model(),
            'browserbase_configured': bool(Config.get_browserbase_api_key() and Config.get_browserbase_project_id()),
            'search_configured': bool(Config.get_brave_api_key()),
            'active_runs': len(cancellation_manager.active_runs()),
        })

    @app.route('/api')
    def api_info():
        return jsonify({
            'name': 'Taskpilot API',
            'version': '1.0.0',
            'endpoints': {
                'browser_automation': {
                    'run': '/api/browser-automation/run',
                    'sessions': '/api/browser-automation/sessions',
                    'cancel': '/api/browser-automation/runs/<run_id>/cancel'
                },
                'research': {
                    'run': '/api/deep-research'
                },
                'screenshots': f'/{SCREENSHOT_SUBDIR}/<filename>'
            }
        })

    return app


if __name__ == '__main__':
    app = create_app()
    port = int(os.getenv('PORT', '5000'))
    logger.info(f"Starting Taskpilot backend on port {port}")
    app.run(host='0.0.0.0', port=port, debug=os.getenv('FLASK_DEBUG') == '1', threaded=True)
