"""
Email content composition.

One entry point, `compose(template, **context)`, for every message the
pipeline sends. Templates produce plain-text and HTML bodies; how those are
put on the wire is the email service's concern.
"""

from html import escape
from ..models.bill import Bill
from ..models.notification import EmailContent

SIGNATURE_TEXT = "Thanks,\nBillify"
SIGNATURE_HTML = "<p>Thanks,<br>Billify</p>"


def format_amount(amount: float) -> str:
    # Two decimals for money-looking values, otherwise the full value
    if round(amount, 2) == amount:
        return f"{amount:.2f}"
    return repr(amount)


def _invoice_processed(bill: Bill) -> EmailContent:
    amount = format_amount(bill.total)
    lines = [f"Your invoice has been processed for an amount of {amount} at {bill.timestamp}."]
    if bill.vendor_name:
        lines.append(f"Vendor: {bill.vendor_name}")

    html_lines = [f"<p>Your invoice has been processed for an amount of <strong>{amount}</strong> "
                  f"at {escape(bill.timestamp)}.</p>"]
    if bill.vendor_name:
        html_lines.append(f"<p>Vendor: {escape(bill.vendor_name)}</p>")

    return EmailContent(
        subject=f"Invoice Processed - Amount: {amount}",
        text_body="\n".join(lines) + "\n\n" + SIGNATURE_TEXT,
        html_body="".join(html_lines) + SIGNATURE_HTML,
    )


def _monthly_report(total: float, month: str) -> EmailContent:
    amount = format_amount(total)
    return EmailContent(
        subject=f"Expense Report - {month} - Amount: {amount}",
        text_body=f"You have an expense report for the month of {month} for {amount}.\n\n" + SIGNATURE_TEXT,
        html_body=(f"<p>You have an expense report for the month of {escape(month)} "
                   f"for <strong>{amount}</strong>.</p>" + SIGNATURE_HTML),
    )


def _verification(link: str) -> EmailContent:
    return EmailContent(
        subject="Verify your email address for Billify",
        text_body=("Please confirm this address to receive invoice notifications:\n"
                   f"{link}\n\n" + SIGNATURE_TEXT),
        html_body=(f'<p>Please confirm this address to receive invoice notifications:</p>'
                   f'<p><a href="{escape(link)}">Verify email address</a></p>' + SIGNATURE_HTML),
    )


TEMPLATES = {
    "invoice_processed": _invoice_processed,
    "monthly_report": _monthly_report,
    "verification": _verification,
}


def compose(template: str, **context) -> EmailContent:
    """
    Render one of the registered templates.

    Args:
        template: invoice_processed (bill=), monthly_report (total=, month=)
            or verification (link=)

    Raises:
        ValueError: unknown template name
    """
    try:
        builder = TEMPLATES[template]
    except KeyError:
        raise ValueError(f"Unknown email template: {template}")
    return builder(**context)
