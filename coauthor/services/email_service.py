import logging
import re
from typing import List, Union

import requests
from sqlmodel import Session

from coauthor.config import settings
from coauthor.models.authorship_purchase import AuthorshipPurchase
from coauthor.models.upcoming_book import UpcomingBook
from coauthor.models.user import User
from coauthor.utils.template import render_template

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


def is_valid_email(email):
    if isinstance(email, list):
        return all(is_valid_email(e) for e in email)

    if not email:
        return False

    return re.match(r"[^@]+@[^@]+\.[^@]+", email) is not None


def send_email(to: Union[str, List[str]], subject: str, html: str) -> bool:
    """
    Send email via Brevo.

    Best effort: failures are logged and reported as False, never raised.
    """

    if isinstance(to, list):
        valid_emails = [e for e in to if is_valid_email(e)]
    else:
        valid_emails = [to] if is_valid_email(to) else []

    if not valid_emails:
        logger.warning(f"No valid emails found: {to}")
        return False

    if not settings.BREVO_API_KEY:
        logger.warning(f"BREVO_API_KEY not set, skipping email '{subject}'")
        return False

    payload = {
        "sender": {
            "email": settings.MAIL_FROM,
            "name": settings.STORE_NAME,
        },
        "to": [{"email": email} for email in valid_emails],
        "subject": subject,
        "htmlContent": html,
    }

    headers = {
        "api-key": settings.BREVO_API_KEY,
        "Content-Type": "application/json",
    }

    try:
        response = requests.post(
            BREVO_API_URL,
            json=payload,
            headers=headers,
            timeout=10,
        )

        if response.status_code >= 400:
            logger.error(
                f"Brevo email failed ({response.status_code}): {response.text}"
            )
            return False

        logger.info(f"Brevo email sent to {valid_emails}")
        return True

    except requests.RequestException:
        logger.exception("Brevo email exception")
        return False


def send_purchase_completed_email(session: Session, purchase: AuthorshipPurchase) -> None:
    book = session.get(UpcomingBook, purchase.book_id)
    user = session.get(User, purchase.user_id)
    context = dict(
        purchase_id=purchase.id,
        buyer_name=purchase.buyer_name,
        phone_number=purchase.phone_number,
        book_title=book.title if book else "",
        position_number=purchase.position_number,
        total_amount=purchase.total_amount,
        discount_amount=purchase.discount_amount,
        payment_id=purchase.payment_id,
    )

    if user:
        send_email(
            to=user.email,
            subject=f"Your co-authorship position in {context['book_title']} is confirmed",
            html=render_template("user_emails/purchase_completed.html", **context),
        )

    if settings.ADMIN_EMAILS:
        send_email(
            to=settings.ADMIN_EMAILS,
            subject=f"Purchase #{purchase.id} completed",
            html=render_template("admin_emails/purchase_completed_admin.html", **context),
        )


def send_refund_initiated_email(
    session: Session,
    purchase: AuthorshipPurchase,
    refund_transaction_id: str,
    refund_amount: int,
    reason: str,
    refund_status: str,
) -> None:
    if not settings.ADMIN_EMAILS:
        return

    book = session.get(UpcomingBook, purchase.book_id)
    send_email(
        to=settings.ADMIN_EMAILS,
        subject=f"Refund initiated for purchase #{purchase.id}",
        html=render_template(
            "admin_emails/purchase_refunded_admin.html",
            purchase_id=purchase.id,
            book_title=book.title if book else "",
            position_number=purchase.position_number,
            refund_transaction_id=refund_transaction_id,
            refund_amount=refund_amount,
            reason=reason,
            refund_status=refund_status,
        ),
    )
