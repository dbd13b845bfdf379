# src/core/__init__.py
"""
Доменный слой (Core Domain).
Ценообразование, справочник водителей, жизненный цикл заказа,
назначение водителя и финансовые проводки.
"""
