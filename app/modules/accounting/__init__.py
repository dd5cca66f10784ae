"""
Módulo de Contabilidad: plan de cuentas y motor de transacciones de partida doble
"""
