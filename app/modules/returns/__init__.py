"""
Módulo de Devoluciones: devoluciones a proveedor y de clientes con su asiento de reversión
"""
