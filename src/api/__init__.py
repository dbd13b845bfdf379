# src/api/__init__.py
"""
HTTP API сервиса заказов (FastAPI).
"""
