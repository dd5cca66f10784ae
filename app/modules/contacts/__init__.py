"""
Módulo de Contactos

Clientes (identificados por teléfono) y proveedores de cada empresa, con su
saldo inicial registrado como asiento contable.

Componentes:
- models.py: Customer y Supplier
- schemas.py: validación y serialización
- service.py: CustomerService y SupplierService
- router.py: endpoints /customers y /suppliers
"""
