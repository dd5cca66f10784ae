"""
Módulo de Saldos: ledgers de clientes y proveedores, acumulados y conciliaciones
"""
