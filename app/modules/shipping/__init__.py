"""
Módulo de Envíos: cargos de envío por ciudad/cantidad y comisiones COD
"""
