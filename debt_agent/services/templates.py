"""
Fixed message templates.

Used for the templated replies (payment promise, acknowledgment) and as the
fallback whenever text generation fails. Indonesian is the default; English
is used for debtors whose language is ``en``.
"""
from debt_agent.models.context import DebtContext, DebtorContext, PaymentContext
from debt_agent.utils.formatting import format_amount, format_date

REMINDER_OPENERS = {
    "id": {
        1: "Kami ingin mengingatkan dengan hormat",
        2: "Kami mengingatkan kembali",
        3: "Mohon perhatian segera",
        4: "Dengan ini kami meminta secara resmi",
        5: "PERINGATAN TERAKHIR",
    },
    "en": {
        1: "This is a friendly reminder",
        2: "We are following up on our previous reminder",
        3: "Your urgent attention is required",
        4: "We formally request",
        5: "FINAL WARNING",
    },
}

ESCALATION_LABELS = {
    "id": {
        "legal": "proses hukum",
        "collection_agency": "agen penagihan",
        "management": "manajemen",
        "write_off": "penghapusan piutang",
    },
    "en": {
        "legal": "legal proceedings",
        "collection_agency": "a collection agency",
        "management": "senior management",
        "write_off": "write-off review",
    },
}


def _lang(debtor: DebtorContext) -> str:
    return "en" if debtor.language == "en" else "id"


def reminder_message(debtor: DebtorContext, debt: DebtContext, level: int, company_name: str) -> str:
    lang = _lang(debtor)
    opener = REMINDER_OPENERS[lang][max(1, min(5, level))]
    balance = format_amount(debt.remaining_balance, debt.currency)
    due = format_date(debt.due_date) if debt.due_date else "-"

    if lang == "en":
        text = (
            f"Dear {debtor.name},\n\n{opener}: invoice {debt.invoice_number} with an outstanding "
            f"balance of {balance} was due on {due}"
        )
        if debt.days_overdue:
            text += f" ({debt.days_overdue} days overdue)"
        text += ".\n\nPlease arrange payment or reply to this message to discuss."
        if level >= 4:
            text += " Continued non-payment may lead to further action."
        return f"{text}\n\n{company_name}"

    text = (
        f"Yth. {debtor.name},\n\n{opener}: tagihan {debt.invoice_number} sebesar {balance} "
        f"jatuh tempo pada {due}"
    )
    if debt.days_overdue:
        text += f" (terlambat {debt.days_overdue} hari)"
    text += ".\n\nMohon segera melakukan pembayaran atau balas pesan ini untuk berdiskusi."
    if level >= 4:
        text += " Keterlambatan lebih lanjut dapat berakibat pada tindakan lanjutan."
    return f"{text}\n\n{company_name}"


def confirmation_message(debtor: DebtorContext, payment: PaymentContext, company_name: str) -> str:
    paid = format_amount(payment.amount, payment.currency)
    remaining = format_amount(payment.remaining_balance, payment.currency)
    if _lang(debtor) == "en":
        text = f"Thank you {debtor.name}, we have received your payment of {paid} on {format_date(payment.payment_date)}."
        if payment.remaining_balance > 0:
            text += f" Remaining balance: {remaining}."
        return f"{text}\n\n{company_name}"
    text = f"Terima kasih {debtor.name}, pembayaran Anda sebesar {paid} pada {format_date(payment.payment_date)} telah kami terima."
    if payment.remaining_balance > 0:
        text += f" Sisa tagihan: {remaining}."
    return f"{text}\n\n{company_name}"


def escalation_message(debtor: DebtorContext, debt: DebtContext, escalation_type: str, company_name: str) -> str:
    lang = _lang(debtor)
    label = ESCALATION_LABELS[lang].get(escalation_type, escalation_type)
    balance = format_amount(debt.remaining_balance, debt.currency)
    if lang == "en":
        return (
            f"Dear {debtor.name},\n\nAfter {debt.previous_reminders} reminders, invoice "
            f"{debt.invoice_number} ({balance}, {debt.days_overdue} days overdue) is being referred to "
            f"{label}. To resolve this before referral, please contact us within 3 business days.\n\n{company_name}"
        )
    return (
        f"Yth. {debtor.name},\n\nSetelah {debt.previous_reminders} kali pengingat, tagihan "
        f"{debt.invoice_number} ({balance}, terlambat {debt.days_overdue} hari) akan diteruskan ke "
        f"{label}. Untuk menyelesaikan sebelum diteruskan, mohon hubungi kami dalam 3 hari kerja.\n\n{company_name}"
    )


def payment_promise_reply(debtor: DebtorContext, debt: DebtContext) -> str:
    total = format_amount(debt.remaining_balance, debt.currency)
    if _lang(debtor) == "en":
        return (
            f"Thank you {debtor.name} for confirming your payment. We will monitor the payment "
            f"according to your commitment. If anything comes up, please contact us right away."
            f"\n\nTotal due: {total}\n\nThank you for your cooperation."
        )
    return (
        f"Terima kasih {debtor.name} atas konfirmasi pembayaran Anda. Kami akan memantau "
        f"pembayaran sesuai dengan komitmen yang Anda berikan. Jika ada kendala, silakan hubungi "
        f"kami segera.\n\nTotal yang harus dibayar: {total}\n\nTerima kasih atas kerjasamanya."
    )


def acknowledgment_reply(debtor: DebtorContext, debt: DebtContext) -> str:
    total = format_amount(debt.remaining_balance, debt.currency)
    if _lang(debtor) == "en":
        return (
            f"Thank you {debtor.name} for your reply. We look forward to your payment of {total} "
            f"to settle this obligation.\n\nIf you need help or more information, please contact us."
        )
    return (
        f"Terima kasih {debtor.name} atas tanggapan Anda. Kami menunggu pembayaran segera untuk "
        f"menyelesaikan kewajiban sebesar {total}.\n\nJika memerlukan bantuan atau informasi lebih "
        f"lanjut, silakan hubungi kami."
    )


def negotiation_fallback(debtor: DebtorContext, debt: DebtContext, company_name: str) -> str:
    if _lang(debtor) == "en":
        return (
            f"Thank you {debtor.name}, we have received your message about invoice "
            f"{debt.invoice_number}. Our team will review it and get back to you shortly.\n\n{company_name}"
        )
    return (
        f"Terima kasih {debtor.name}, pesan Anda terkait tagihan {debt.invoice_number} telah kami "
        f"terima. Tim kami akan meninjau dan segera menghubungi Anda.\n\n{company_name}"
    )
