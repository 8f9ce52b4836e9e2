#!/usr/bin/env python3
"""
Video Player Web gateway - static landing page plus a CORS-free relay
to the stream API, and a WebSocket channel that runs the player controller
"""
import json
import logging
import os
import sys

from flask import Flask, jsonify, request, send_from_directory
from flask_sock import Sock

from player import EXAMPLE_TITLES, PlayerController, VideoWidget
from stream_api import STREAM_API_BASE_URL, StreamAPIClient

# Configuration
PORT = int(os.environ.get('PORT', 3000))
PUBLIC_DIR = os.environ.get('PUBLIC_DIR', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'public'))
LOG_FILE = os.environ.get('LOG_FILE')
SERVICE_NAME = "Video Player Web"

formatter = logging.Formatter('[%(asctime)s] [%(levelname)s] %(message)s')
logger = logging.getLogger(__name__)


def configure_logging(log_file=None, level=logging.INFO):
    """Console logging for every module, plus a log file when one is given"""
    root = logging.getLogger()
    if getattr(root, '_gateway_configured', False):
        return
    root.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root._gateway_configured = True


configure_logging(LOG_FILE)

app = Flask(__name__, static_folder=PUBLIC_DIR, static_url_path='')
# Relayed JSON keeps the upstream's key order
app.json.sort_keys = False
sock = Sock(app)

stream_client = StreamAPIClient()


def log_request(mode, method, url, status="→"):
    """Consistent logging format"""
    logger.info(f"[{mode.upper():8}] {status} {method:4} {url[:80]}")


@app.after_request
def add_cors_headers(response):
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = '*'
    return response


# =============================================================================
# HTTP ROUTES
# =============================================================================

@app.route('/')
def index():
    """Landing page"""
    return send_from_directory(app.static_folder, 'index.html')


@app.route('/api/proxy-get-stream')
def proxy_get_stream():
    """Relay a title lookup to the stream API and hand its JSON back unchanged"""
    title = request.args.get('title', '')

    if not title:
        return jsonify({'success': False, 'error': 'Title parameter required'})

    url = stream_client.url_for(title)
    log_request('relay', 'GET', url)

    try:
        data = stream_client.get_stream(title)
    except Exception as e:
        log_request('relay', 'GET', url, f"✗ {e}")
        return jsonify({'success': False, 'error': str(e)})

    log_request('relay', 'GET', url, "✓")
    return jsonify(data)


@app.route('/health')
def health():
    return jsonify({'status': 'OK', 'service': SERVICE_NAME})


# =============================================================================
# PLAYER CHANNEL (WebSocket)
# =============================================================================

class SocketVideoWidget(VideoWidget):
    """Forwards widget commands and alerts to the browser over the socket"""

    def __init__(self, ws):
        self.ws = ws

    def send(self, payload):
        self.ws.send(json.dumps(payload))

    def set_source(self, source):
        self.send({'type': 'command', 'command': 'source', 'source': source})

    def set_paused(self, paused):
        self.send({'type': 'command', 'command': 'paused', 'paused': paused})

    def seek(self, time):
        self.send({'type': 'command', 'command': 'seek', 'time': time})

    def set_fullscreen(self, fullscreen):
        self.send({'type': 'command', 'command': 'fullscreen', 'fullscreen': fullscreen})

    def alert(self, title, message):
        self.send({'type': 'alert', 'title': title, 'message': message})


def _fullscreen(controller, message):
    if message.get('value'):
        controller.enter_fullscreen()
    else:
        controller.exit_fullscreen()


PLAYER_ACTIONS = {
    'title': lambda c, m: c.set_title(m.get('title', '')),
    'fetch': lambda c, m: c.fetch_stream(m.get('title')),
    'example': lambda c, m: c.play_example(m['title']),
    'pause': lambda c, m: c.pause(),
    'resume': lambda c, m: c.resume(),
    'toggle': lambda c, m: c.toggle_pause(),
    'seek': lambda c, m: c.seek(float(m['time'])),
    'replay': lambda c, m: c.replay(),
    'clear': lambda c, m: c.clear_all(),
    'fullscreen': _fullscreen,
}

WIDGET_EVENTS = {
    'loadStart': lambda c, m: c.on_load_start(),
    'load': lambda c, m: c.on_load(m),
    'progress': lambda c, m: c.on_progress(m),
    'seeking': lambda c, m: c.on_seeking(float(m.get('currentTime', 0))),
    'end': lambda c, m: c.on_end(),
    'buffer': lambda c, m: c.on_buffer(m),
    'error': lambda c, m: c.on_error(m.get('error')),
}


def handle_player_message(controller, raw):
    """Apply one browser message to the controller and build the reply.

    Messages are JSON objects carrying either an ``action`` (user input) or
    an ``event`` (video element callback).
    """
    try:
        message = json.loads(raw)
        if not isinstance(message, dict):
            raise ValueError("message must be a JSON object")

        if 'action' in message:
            handler = PLAYER_ACTIONS[message['action']]
        elif 'event' in message:
            handler = WIDGET_EVENTS[message['event']]
        else:
            raise ValueError("message needs an 'action' or an 'event'")

        handler(controller, message)
    except KeyError as e:
        return {'type': 'error', 'error': f"Unknown or incomplete message: {e}"}
    except (TypeError, ValueError) as e:
        return {'type': 'error', 'error': str(e)}

    return {'type': 'state', 'state': controller.snapshot()}


@sock.route('/ws/player')
def player_socket(ws):
    """One player controller per connected page"""
    widget = SocketVideoWidget(ws)
    controller = PlayerController(client=stream_client, widget=widget, alert=widget.alert)
    log_request('player', 'WS', 'Client connected')

    widget.send({'type': 'state', 'state': controller.snapshot(), 'examples': EXAMPLE_TITLES})

    while True:
        try:
            raw = ws.receive()
            if raw is None:
                break
            widget.send(handle_player_message(controller, raw))
        except Exception as e:
            logger.info(f"[PLAYER] Connection closed: {e}")
            break

    log_request('player', 'WS', 'Client disconnected')


# =============================================================================
# MAIN
# =============================================================================

def main():
    print("\n" + "=" * 70)
    print(f"🚀 {SERVICE_NAME} - stream relay")
    print("=" * 70)
    print(f"  Landing page  → http://localhost:{PORT}/")
    print(f"  Stream relay  → /api/proxy-get-stream?title=...")
    print(f"  Player socket → /ws/player")
    print(f"  Health        → /health")
    print(f"  Upstream      → {STREAM_API_BASE_URL}")
    print("=" * 70 + "\n")

    logger.info(f"Server running on port {PORT}")
    app.run(host='0.0.0.0', port=PORT, debug=False, threaded=True)


if __name__ == '__main__':
    main()
