"""
Доменный слой: сущности, порты и доменные сервисы.
"""
