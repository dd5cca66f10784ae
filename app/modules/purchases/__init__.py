"""
Módulo de Compras: facturas de proveedor con integración de inventario y contabilidad
"""
