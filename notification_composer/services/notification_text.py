#!/usr/bin/env python3
"""
Notification Text

Derived display values for a notification card: the app name and badge
shown in the card header, and the message body for each transaction kind.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .formatters import format_amount


class Institution(str, Enum):
    """Known institutions plus 'Outro' for custom apps"""

    NUBANK = 'Nubank'
    ITAU = 'Itaú'
    BRADESCO = 'Bradesco'
    CAIXA = 'Caixa'
    BANCO_DO_BRASIL = 'Banco do Brasil'
    SANTANDER = 'Santander'
    INTER = 'Inter'
    KIWIFY = 'Kiwify'
    HOTMART = 'Hotmart'
    OTHER = 'Outro'


class TransactionKind(str, Enum):
    """Supported message templates"""

    PIX_RECEIVED = 'PIX Recebido'
    PIX_SENT = 'PIX Enviado'
    DEBIT = 'Débito'
    CREDIT = 'Crédito'
    TRANSFER = 'Transferência'
    BILL_PAYMENT = 'Pagamento de Boleto'
    PHONE_TOP_UP = 'Recarga de Celular'
    INVESTMENT = 'Aplicação em Investimento'
    INVESTMENT_REDEMPTION = 'Resgate de Investimento'
    YIELD = 'Rendimento'


# Badge colours (RGB) drawn behind the initial letter
INSTITUTION_COLORS = {
    Institution.NUBANK: (130, 10, 209),
    Institution.ITAU: (236, 112, 0),
    Institution.BRADESCO: (204, 9, 47),
    Institution.CAIXA: (0, 91, 170),
    Institution.BANCO_DO_BRASIL: (252, 229, 0),
    Institution.SANTANDER: (236, 0, 0),
    Institution.INTER: (255, 122, 0),
    Institution.KIWIFY: (0, 181, 110),
    Institution.HOTMART: (240, 75, 35),
    Institution.OTHER: (64, 64, 64),
}

# Institution websites (icons are drawn locally, never fetched)
INSTITUTION_DOMAINS = {
    Institution.NUBANK: 'nubank.com.br',
    Institution.ITAU: 'itau.com.br',
    Institution.BRADESCO: 'bradesco.com.br',
    Institution.CAIXA: 'caixa.gov.br',
    Institution.BANCO_DO_BRASIL: 'bb.com.br',
    Institution.SANTANDER: 'santander.com.br',
    Institution.INTER: 'bancointer.com.br',
    Institution.KIWIFY: 'kiwify.com.br',
    Institution.HOTMART: 'hotmart.com',
}

MESSAGE_TEMPLATES = {
    TransactionKind.PIX_RECEIVED: "Você recebeu um Pix de {counterparty} no valor de {amount}.",
    TransactionKind.PIX_SENT: "Pix de {amount} enviado para {counterparty}.",
    TransactionKind.DEBIT: "Compra de {amount} no débito em {counterparty}.",
    TransactionKind.CREDIT: "Compra de {amount} no crédito em {counterparty}.",
    TransactionKind.TRANSFER: "Transferência de {amount} recebida de {counterparty}.",
    TransactionKind.BILL_PAYMENT: "Pagamento de boleto de {amount} para {counterparty} realizado.",
    TransactionKind.PHONE_TOP_UP: "Recarga de {amount} realizada para {counterparty}.",
    TransactionKind.INVESTMENT: "Aplicação de {amount} em {counterparty} confirmada.",
    TransactionKind.INVESTMENT_REDEMPTION: "Resgate de {amount} de {counterparty} disponível na conta.",
    TransactionKind.YIELD: "Seu dinheiro rendeu {amount} em {counterparty}.",
}

DEFAULT_CUSTOM_NAME = 'Banco'


@dataclass(frozen=True)
class AppBadge:
    """What the card header shows for the app"""
    name: str
    letter: str
    color: Tuple[int, int, int]
    icon: Optional[bytes] = None


def app_badge(record) -> AppBadge:
    """
    Resolve the display name and icon for a notification's app

    Known institutions use their own name; 'Outro' uses the custom name
    and custom icon, falling back to 'Banco' and its initial letter.

    Args:
        record: NotificationRecord

    Returns:
        AppBadge for the card header
    """
    color = INSTITUTION_COLORS[record.app]

    if record.app == Institution.OTHER:
        name = record.custom_app_name or DEFAULT_CUSTOM_NAME
        letter = (record.custom_app_name or 'B')[0].upper()
        return AppBadge(name=name, letter=letter, color=color, icon=record.custom_icon)

    return AppBadge(name=record.app.value, letter=record.app.value[0], color=color)


def render_message(record) -> str:
    """Message body for a notification (amount formatted on render)"""
    template = MESSAGE_TEMPLATES[record.transaction_kind]
    return template.format(
        amount=format_amount(record.amount),
        counterparty=record.counterparty_name,
    )
