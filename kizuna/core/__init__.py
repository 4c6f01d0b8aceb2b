"""
Core
設定・ログ・例外・キャッシュ
"""
