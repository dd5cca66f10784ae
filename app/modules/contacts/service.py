"""
Servicios de negocio para el módulo de Contactos

Implementa:
- Alta de clientes y proveedores con asiento de saldo inicial opcional
  (contrapartida en Opening Balance Equity, 3001)
- Búsqueda o creación de clientes por teléfono (flujo de órdenes)
- Consulta y listado por empresa

Los acumulados de clientes (total_orders, total_spent, last_order_date) no se
modifican aquí: los recalcula BalanceService.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_

from app.common.exceptions import ConflictError
from app.common.tenancy import TenantScopedService
from app.common.validators import to_decimal, utcnow
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import PartyType, Transaction, TransactionKind
from app.modules.contacts.models import Customer, Supplier
from app.modules.contacts.schemas import CustomerCreate, CustomerUpdate, SupplierCreate

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def customer_opening_description(customer: Customer) -> str:
    return f"Customer Opening Balance - {customer.display_name}"


def supplier_opening_description(supplier: Supplier) -> str:
    return f"Supplier Opening Balance - {supplier.name}"


class CustomerService(TenantScopedService):
    """Servicio de clientes"""

    def get_customer(self, customer_id: UUID) -> Customer:
        return self.scope.get(Customer, customer_id, "Cliente")

    def get_customer_by_phone(self, phone_number: str) -> Optional[Customer]:
        return self.scope.query(Customer).filter(Customer.phone_number == phone_number).first()

    def create_customer(self, data: CustomerCreate, commit: bool = True) -> Customer:
        """
        Crear cliente.

        Con opening_balance se registra Dr Cuentas por Cobrar / Cr Opening Balance;
        con advance_balance, Dr Customer Advance / Cr Opening Balance y el anticipo
        queda también en customer.advance_balance.
        """
        from app.modules.accounting.service import TransactionService

        if self.get_customer_by_phone(data.phone_number):
            raise ConflictError(
                f"Ya existe un cliente con el teléfono {data.phone_number}",
                phone_number=data.phone_number
            )

        try:
            customer = Customer(
                name=data.name,
                phone_number=data.phone_number,
                email=data.email,
                address=data.address,
                city=data.city,
                advance_balance=data.advance_balance,
                total_orders=0,
                total_spent=ZERO
            )
            self.scope.add(customer)
            self.db.flush()

            if data.opening_balance > ZERO:
                entries = [
                    (AccountCodes.ACCOUNTS_RECEIVABLE, data.opening_balance, ZERO),
                    (AccountCodes.OPENING_BALANCE, ZERO, data.opening_balance),
                ]
            elif data.advance_balance > ZERO:
                entries = [
                    (AccountCodes.CUSTOMER_ADVANCE, data.advance_balance, ZERO),
                    (AccountCodes.OPENING_BALANCE, ZERO, data.advance_balance),
                ]
            else:
                entries = []

            if entries:
                TransactionService(self.db, self.tenant_id).post_entries(
                    customer_opening_description(customer),
                    entries,
                    TransactionKind.OPENING_BALANCE,
                    transaction_date=data.opening_balance_date or utcnow(),
                    party_type=PartyType.CUSTOMER,
                    party_id=customer.id
                )

            if commit:
                self.db.commit()
                self.db.refresh(customer)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Customer created: {customer.display_name} ({customer.id})")
        return customer

    def find_or_create_customer(
        self,
        phone_number: str,
        name: Optional[str] = None,
        city: Optional[str] = None,
        address: Optional[str] = None
    ) -> Customer:
        """Cliente por teléfono; si no existe se crea sin saldo inicial (sin confirmar)"""
        customer = self.get_customer_by_phone(phone_number)
        if customer:
            if name and not customer.name:
                customer.name = name
            return customer

        customer = Customer(
            name=name,
            phone_number=phone_number,
            city=city,
            address=address,
            advance_balance=ZERO,
            total_orders=0,
            total_spent=ZERO
        )
        self.scope.add(customer)
        self.db.flush()
        logger.info(f"Customer created from order flow: {phone_number}")
        return customer

    def update_customer(self, customer_id: UUID, data: CustomerUpdate) -> Customer:
        customer = self.get_customer(customer_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(customer, field, value)
        self.db.commit()
        self.db.refresh(customer)
        return customer

    def list_customers(
        self,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Customer], int]:
        query = self.scope.query(Customer)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(Customer.name).like(pattern),
                Customer.phone_number.like(f"%{search}%")
            ))
        total = query.count()
        items = query.order_by(Customer.created_at.desc()).offset(offset).limit(limit).all()
        return items, total

    def get_opening_transaction(self, customer: Customer) -> Optional[Transaction]:
        """
        Asiento de saldo inicial del cliente: por tipo y cliente, o por la
        descripción para asientos anteriores a party_type/party_id.
        """
        transaction = self.scope.query(Transaction).filter(
            Transaction.kind == TransactionKind.OPENING_BALANCE,
            Transaction.party_type == PartyType.CUSTOMER,
            Transaction.party_id == customer.id
        ).order_by(Transaction.transaction_date).first()
        if transaction:
            return transaction
        return self.scope.query(Transaction).filter(
            Transaction.description == customer_opening_description(customer)
        ).order_by(Transaction.transaction_date).first()


class SupplierService(TenantScopedService):
    """Servicio de proveedores"""

    def get_supplier(self, supplier_id: UUID) -> Supplier:
        return self.scope.get(Supplier, supplier_id, "Proveedor")

    def create_supplier(self, data: SupplierCreate, commit: bool = True) -> Supplier:
        """
        Crear proveedor.

        Saldo positivo (se le debe): Dr Opening Balance / Cr Cuentas por Pagar.
        Saldo negativo (anticipo entregado): Dr Advance to Suppliers / Cr Opening Balance.
        """
        from app.modules.accounting.service import TransactionService

        existing = self.scope.query(Supplier).filter(
            func.lower(Supplier.name) == data.name.lower()
        ).first()
        if existing:
            raise ConflictError(f"Ya existe un proveedor con el nombre '{data.name}'", name=data.name)

        opening = to_decimal(data.opening_balance)
        opening_date = data.opening_balance_date or utcnow()
        try:
            supplier = Supplier(
                name=data.name,
                phone=data.phone,
                email=data.email,
                address=data.address,
                opening_balance=opening,
                opening_balance_date=opening_date if opening else None,
                advance_balance=-opening if opening < ZERO else ZERO
            )
            self.scope.add(supplier)
            self.db.flush()

            if opening > ZERO:
                entries = [
                    (AccountCodes.OPENING_BALANCE, opening, ZERO),
                    (AccountCodes.ACCOUNTS_PAYABLE, ZERO, opening),
                ]
            elif opening < ZERO:
                entries = [
                    (AccountCodes.SUPPLIER_ADVANCE, -opening, ZERO),
                    (AccountCodes.OPENING_BALANCE, ZERO, -opening),
                ]
            else:
                entries = []

            if entries:
                TransactionService(self.db, self.tenant_id).post_entries(
                    supplier_opening_description(supplier),
                    entries,
                    TransactionKind.OPENING_BALANCE,
                    transaction_date=opening_date,
                    party_type=PartyType.SUPPLIER,
                    party_id=supplier.id
                )

            if commit:
                self.db.commit()
                self.db.refresh(supplier)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Supplier created: {supplier.name} (opening balance {opening})")
        return supplier

    def list_suppliers(
        self,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Supplier], int]:
        query = self.scope.query(Supplier)
        if search:
            query = query.filter(func.lower(Supplier.name).like(f"%{search.lower()}%"))
        total = query.count()
        items = query.order_by(Supplier.name).offset(offset).limit(limit).all()
        return items, total
