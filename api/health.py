"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import json

from src.utils.config import StoreConfig


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        """Report liveness and whether store credentials are configured."""
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        response = json.dumps({
            "status": "ok",
            "service": "estate-discovery-core",
            "store_configured": bool(StoreConfig.SUPABASE_URL and StoreConfig.SUPABASE_SERVICE_ROLE_KEY),
        })
        self.wfile.write(response.encode('utf-8'))

    def do_POST(self):
        """Handle POST request (same as GET for health check)."""
        self.do_GET()
