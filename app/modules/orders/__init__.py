"""
Módulo de Órdenes: órdenes de venta normalizadas (Order / OrderItem)
"""
