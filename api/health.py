"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import json

from appview.utils.http import CORS_HEADERS


class handler(BaseHTTPRequestHandler):
    """Health check handler for the serverless deployment."""

    def do_GET(self):
        """Handle GET request."""
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        self.end_headers()
        response = json.dumps({"status": "ok", "service": "marketplace-appview"})
        self.wfile.write(response.encode('utf-8'))

    def do_POST(self):
        """Handle POST request (same as GET for health check)."""
        self.do_GET()

    def do_OPTIONS(self):
        """Handle CORS preflight."""
        self.send_response(200)
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        self.end_headers()
