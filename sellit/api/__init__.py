"""
HTTP API. Роутеры собираются в sellit.api.v1 (create_api_router / api_v1).
"""
