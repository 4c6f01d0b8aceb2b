"""
Kizuna API
FastAPI による HTTP インターフェース
"""
