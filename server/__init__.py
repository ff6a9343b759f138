"""
FastAPI backend server for the PDFDeck web application.

Provides REST API and WebSocket endpoints for:
- PDF upload and page previews
- Per-page mode selection and conversion
- Real-time progress updates
- Per-user API key storage and the registration allow-list
"""

__version__ = "0.1.0"
