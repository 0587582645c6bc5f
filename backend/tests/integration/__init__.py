"""Integration tests - HTTP API through FastAPI TestClient"""
