"""HTML email bodies for inspection, subscription and document-verification mail."""

from html import escape
from typing import Optional

from estate_platform.app.config import EngineConfig
from estate_platform.services.negotiation_resolver import format_naira


def inspection_links(config: EngineConfig, inspection_id: str, buyer_id: str, owner_id: str) -> dict:
    """Secure response links each party uses to act on an inspection."""
    base = config.client_link
    return {
        "seller_response": f"{base}/secure-seller-response/{owner_id}/{inspection_id}",
        "buyer_response": f"{base}/secure-buyer-response/{buyer_id}/{inspection_id}",
        "check": f"{base}/secure-buyer-response/{buyer_id}/{inspection_id}/check",
        "browse": f"{base}/market-place",
    }


def _button(url: str, label: str) -> str:
    return f"""
    <tr>
        <td style="padding: 24px 0 8px 0;">
            <a href="{escape(url)}" style="background: #09391c; color: #ffffff; padding: 12px 24px; border-radius: 6px; text-decoration: none; font-weight: 600; font-size: 15px;">{escape(label)}</a>
        </td>
    </tr>
    """


def _rows(details: dict) -> str:
    rows = "".join(
        f'<tr><td style="font-weight:600; width:160px;">{escape(str(k))}:</td><td>{escape(str(v))}</td></tr>'
        for k, v in details.items()
        if v not in (None, "")
    )
    if not rows:
        return ""
    return f"""
    <tr>
        <td>
            <table width="100%" cellpadding="6" cellspacing="0" style="font-size: 14px; color: #374151;">
                {rows}
            </table>
        </td>
    </tr>
    """


def _layout(heading: str, greeting: str, paragraphs: list[str], details: Optional[dict] = None,
            button: Optional[tuple[str, str]] = None) -> str:
    body = "".join(
        f'<tr><td style="padding: 8px 0; color: #4b5563; font-size: 15px;">{escape(p)}</td></tr>'
        for p in paragraphs
    )
    return f"""
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"></head>
<body style="margin: 0; padding: 20px; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background-color: #f3f4f6;">
    <table width="600" cellpadding="0" cellspacing="0" style="background: #fff; border-radius: 8px; padding: 32px; margin: 0 auto;">
        <tr><td><h2 style="color: #09391c; margin-top: 0;">{escape(heading)}</h2></td></tr>
        <tr><td style="padding: 8px 0; color: #111827; font-size: 15px;">{escape(greeting)}</td></tr>
        {body}
        {_rows(details or {})}
        {_button(*button) if button else ""}
    </table>
</body>
</html>
"""


def _schedule(date_value, time_value) -> str:
    parts = [str(p) for p in (date_value, time_value) if p]
    return " at ".join(parts)


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


def new_request_for_agent(agent_name: str, buyer_name: str, location: str, date_value, time_value,
                          link: str) -> str:
    return _layout(
        "New Inspection Request",
        f"Hi {agent_name},",
        [f"{buyer_name} has requested an inspection of your property at {location}."],
        {"Proposed schedule": _schedule(date_value, time_value)},
        (link, "Review Request"),
    )


def request_rejected_for_buyer(buyer_name: str, location: str, note: Optional[str], browse_link: str) -> str:
    paragraphs = [f"Unfortunately the agent declined your inspection request for {location}."]
    if note:
        paragraphs.append(f"Note from the agent: {note}")
    return _layout("Inspection Request Declined", f"Hi {buyer_name},", paragraphs, None,
                   (browse_link, "Browse Other Properties"))


def request_approved_for_buyer(buyer_name: str, location: str, date_value, time_value, link: str) -> str:
    return _layout(
        "Inspection Request Approved",
        f"Hi {buyer_name},",
        [f"Your inspection request for {location} has been approved."],
        {"Schedule": _schedule(date_value, time_value)},
        (link, "View Inspection"),
    )


def payment_link_for_buyer(buyer_name: str, location: str, fee: int, payment_url: str) -> str:
    return _layout(
        "Complete Your Inspection Payment",
        f"Hi {buyer_name},",
        [
            f"The agent accepted your inspection request for {location}.",
            "Pay the inspection fee to confirm your booking.",
        ],
        {"Inspection fee": format_naira(fee)},
        (payment_url, "Pay Inspection Fee"),
    )


def negotiation_update(recipient_name: str, subject: str, message: str, location: str,
                       negotiation_price=None, document_url: Optional[str] = None,
                       reason: Optional[str] = None, date_value=None, time_value=None,
                       date_time_changed: bool = False, link: Optional[str] = None) -> str:
    details = {
        "Property": location,
        "Current offer": format_naira(negotiation_price) if negotiation_price else None,
        "Letter of Intention": document_url,
        "Reason": reason,
        "New schedule" if date_time_changed else "Schedule": _schedule(date_value, time_value),
    }
    return _layout(subject, f"Hi {recipient_name},", [message], details,
                   (link, "Respond Now") if link else None)


def negotiation_confirmation(actor_name: str, subject: str, message: str, location: str) -> str:
    return _layout(
        subject,
        f"Hi {actor_name},",
        ["This confirms the response you just submitted.", message],
        {"Property": location},
    )


def inspection_submitted_for_buyer(buyer_name: str, location: str, amount, reference: str,
                                   date_value, time_value) -> str:
    return _layout(
        "Inspection Request Submitted",
        f"Hi {buyer_name},",
        ["Your payment was received and your inspection request has been sent to the agent."],
        {
            "Property": location,
            "Amount paid": format_naira(amount),
            "Reference": reference,
            "Schedule": _schedule(date_value, time_value),
        },
    )


def new_offer_for_seller(seller_name: str, buyer_name: str, location: str, negotiation_price,
                         letter_of_intention: Optional[str], date_value, time_value, link: str) -> str:
    return _layout(
        "New Offer Received – Action Required",
        f"Hi {seller_name},",
        [f"{buyer_name} has paid for an inspection of your property at {location}."],
        {
            "Offer": format_naira(negotiation_price) if negotiation_price else None,
            "Letter of Intention": letter_of_intention,
            "Proposed schedule": _schedule(date_value, time_value),
        },
        (link, "Respond to Request"),
    )


def inspection_payment_failed(buyer_name: str, location: str, reference: str, browse_link: str) -> str:
    return _layout(
        "Inspection Payment Failed",
        f"Hi {buyer_name},",
        [
            f"We could not confirm your inspection payment for {location}.",
            "Your request has been cancelled. You can submit a new request at any time.",
        ],
        {"Reference": reference},
        (browse_link, "Browse Properties"),
    )


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


def subscription_activated(name: str, plan_name: str, end_date, listing_url: Optional[str]) -> str:
    return _layout(
        "Subscription Activated",
        f"Hi {name},",
        [f"Your {plan_name} subscription is now active."],
        {"Valid until": end_date.date().isoformat() if end_date else None, "Public page": listing_url},
    )


def subscription_payment_failed(name: str, plan_name: str, retry_link: str) -> str:
    return _layout(
        "Subscription Payment Failed",
        f"Hi {name},",
        [f"We could not process the payment for your {plan_name} subscription."],
        None,
        (retry_link, "Try Again"),
    )


def subscription_expiry_warning(name: str, plan_name: str, end_date, auto_renew: bool) -> str:
    note = (
        "It will renew automatically with your saved card."
        if auto_renew
        else "Renew now to keep your public listing page online."
    )
    return _layout(
        "Subscription Expiring Soon",
        f"Hi {name},",
        [f"Your {plan_name} subscription expires on {end_date.date().isoformat()}.", note],
    )


def subscription_renewed(name: str, plan_name: str, end_date, amount) -> str:
    return _layout(
        "Subscription Renewed",
        f"Hi {name},",
        [f"Your {plan_name} subscription was renewed automatically."],
        {"Amount charged": format_naira(amount), "Valid until": end_date.date().isoformat()},
    )


def subscription_renewal_failed(name: str, plan_name: str, retry_link: str) -> str:
    return _layout(
        "Subscription Renewal Failed",
        f"Hi {name},",
        [f"We could not renew your {plan_name} subscription with your saved card, so it has expired."],
        None,
        (retry_link, "Renew Subscription"),
    )


def subscription_cancelled(name: str, plan_name: str, amount, reference: Optional[str], cancelled_on) -> str:
    return _layout(
        "Subscription Cancelled",
        f"Hi {name},",
        [
            f"Your {plan_name} subscription was cancelled on {cancelled_on.date().isoformat()}.",
            "You will not be billed for it again.",
        ],
        {"Amount paid": format_naira(amount) if amount is not None else None, "Reference": reference},
    )


def auto_renewal_stopped(name: str, plan_name: str, end_date) -> str:
    ends = f" on {end_date.date().isoformat()}" if end_date else ""
    return _layout(
        "Auto-Renewal Stopped",
        f"Hi {name},",
        [
            f"Auto-renewal for your {plan_name} subscription has been stopped.",
            f"It will not renew when the current cycle ends{ends}. You can renew manually at any time.",
        ],
    )


def subscription_expired(name: str, plan_name: str, retry_link: str) -> str:
    return _layout(
        "Subscription Expired",
        f"Hi {name},",
        [f"Your {plan_name} subscription has expired."],
        None,
        (retry_link, "Renew Subscription"),
    )


# ---------------------------------------------------------------------------
# Document verification
# ---------------------------------------------------------------------------


def document_for_verifier(document_type: str, document_number: Optional[str], submitter: str,
                          access_code: str, review_link: str) -> str:
    return _layout(
        "Document Verification Request",
        "Hello,",
        ["A new document has been submitted for verification. Use the access code below to open it."],
        {
            "Document type": document_type,
            "Document number": document_number,
            "Submitted by": submitter,
            "Access code": access_code,
        },
        (review_link, "Open Document"),
    )


def document_submission_summary(name: str, documents: list[dict], amount, reference: str) -> str:
    details = {d["document_type"]: d.get("document_number") or "submitted" for d in documents}
    details["Amount paid"] = format_naira(amount)
    details["Reference"] = reference
    return _layout(
        "Documents Submitted for Verification",
        f"Hi {name},",
        ["Your payment was received and your documents have been forwarded for verification."],
        details,
    )
