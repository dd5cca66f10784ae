"""
Plan de cuentas por defecto.

Los códigos son estables: los flujos de compras, ventas, pagos y devoluciones
ubican sus cuentas por código y las crean bajo demanda con estos datos.
"""
from app.modules.accounting.models import AccountType, AccountSubtype


class AccountCodes:
    CASH = "1000"
    BANK = "1100"
    ACCOUNTS_RECEIVABLE = "1200"
    CUSTOMER_ADVANCE = "1210"
    SUPPLIER_ADVANCE = "1230"
    INVENTORY = "1300"
    ACCOUNTS_PAYABLE = "2000"
    ACCRUED_EXPENSES = "2100"
    COD_FEE_PAYABLE = "2200"
    OWNER_CAPITAL = "3000"
    OPENING_BALANCE = "3001"
    OWNER_DRAWINGS = "3100"
    RETAINED_EARNINGS = "3200"
    SALES_REVENUE = "4000"
    SALES_RETURNS = "4100"
    SHIPPING_REVENUE = "4200"
    OTHER_INCOME = "4400"
    COGS = "5000"
    SHIPPING_EXPENSE = "5100"
    COD_FEE_EXPENSE = "5200"


# code -> (name, type, subtype)
DEFAULT_CHART_OF_ACCOUNTS = {
    AccountCodes.CASH: ("Cash", AccountType.ASSET, AccountSubtype.CASH),
    AccountCodes.BANK: ("Bank Account", AccountType.ASSET, AccountSubtype.BANK),
    AccountCodes.ACCOUNTS_RECEIVABLE: ("Accounts Receivable", AccountType.ASSET, AccountSubtype.RECEIVABLE),
    AccountCodes.CUSTOMER_ADVANCE: ("Customer Advance Balance", AccountType.ASSET, AccountSubtype.ADVANCE),
    AccountCodes.SUPPLIER_ADVANCE: ("Advance to Suppliers", AccountType.ASSET, AccountSubtype.ADVANCE),
    AccountCodes.INVENTORY: ("Inventory", AccountType.ASSET, AccountSubtype.INVENTORY),
    AccountCodes.ACCOUNTS_PAYABLE: ("Accounts Payable", AccountType.LIABILITY, AccountSubtype.PAYABLE),
    AccountCodes.ACCRUED_EXPENSES: ("Accrued Expenses", AccountType.LIABILITY, None),
    AccountCodes.COD_FEE_PAYABLE: ("COD Fee Payable", AccountType.LIABILITY, AccountSubtype.PAYABLE),
    AccountCodes.OWNER_CAPITAL: ("Owner Capital", AccountType.EQUITY, None),
    AccountCodes.OPENING_BALANCE: ("Opening Balance", AccountType.EQUITY, None),
    AccountCodes.OWNER_DRAWINGS: ("Owner Drawings", AccountType.EQUITY, None),
    AccountCodes.RETAINED_EARNINGS: ("Retained Earnings", AccountType.EQUITY, None),
    AccountCodes.SALES_REVENUE: ("Sales Revenue", AccountType.REVENUE, None),
    AccountCodes.SALES_RETURNS: ("Sales Returns", AccountType.REVENUE, None),
    AccountCodes.SHIPPING_REVENUE: ("Shipping Revenue", AccountType.REVENUE, None),
    AccountCodes.OTHER_INCOME: ("Other Income", AccountType.REVENUE, None),
    AccountCodes.COGS: ("Cost of Goods Sold", AccountType.EXPENSE, None),
    AccountCodes.SHIPPING_EXPENSE: ("Shipping Expense", AccountType.EXPENSE, None),
    AccountCodes.COD_FEE_EXPENSE: ("COD Fee Expense", AccountType.EXPENSE, None),
}


# Métodos de pago -> cuenta de contrapartida
PAYMENT_METHOD_ACCOUNTS = {
    "CASH": AccountCodes.CASH,
    "BANK": AccountCodes.BANK,
    "BANK_TRANSFER": AccountCodes.BANK,
    "CARD": AccountCodes.BANK,
    "CHEQUE": AccountCodes.BANK,
}


def account_code_for_payment_method(method) -> str:
    """Cuenta de caja o banco según el método de pago (efectivo por defecto)"""
    key = getattr(method, "value", method)
    return PAYMENT_METHOD_ACCOUNTS.get(str(key or "CASH").upper(), AccountCodes.CASH)
