"""
Módulo de Pagos: pagos de clientes y a proveedores con su asiento contable
"""
