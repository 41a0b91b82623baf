"""Message and Block Kit builders for the intake workflow."""

from __future__ import annotations

from typing import Any, Dict, List
from urllib.parse import quote

CREW_CHIEF_ACTION_ID = "select_crew_chief"
CREW_CHIEF_BLOCK_ID = "crew_chief_select"

LOSS_NOTE_FORM_URL = (
    "https://docs.google.com/forms/d/e/1FAIpQLSey29MpuufCPAn55zRTSK1ZtGF3f9411ey6vn0bQJtArCS8dw"
    "/viewform?usp=pp_url"
)
LOSS_NOTE_JOB_ENTRY = "entry.703689566"
LOSS_NOTE_CUSTOMER_ENTRY = "entry.1275810596"

MOISTURE_FORM_URL = (
    "https://docs.google.com/forms/d/e/1FAIpQLSeDAvJ0Ho7gdZTBm-04PnM-dmaNiu3VpqnH4EMyiQkwQQCSuA"
    "/viewform?usp=pp_url"
)
MOISTURE_JOB_ENTRY = "entry.931803057"

DEFAULT_CUSTOMER = "Customer"
MISSING_FORM_DATE = "DATE_MISSING"

# Same unescaped set as JavaScript encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def build_loss_note_link(job_number: str, customer_name: str) -> str:
    return (
        f"{LOSS_NOTE_FORM_URL}&{LOSS_NOTE_JOB_ENTRY}={encode_component(job_number)}"
        f"&{LOSS_NOTE_CUSTOMER_ENTRY}={encode_component(customer_name)}"
    )


def build_loss_note_message(*, job_number: str, customer_name: str, marker: str | None = None) -> Dict[str, Any]:
    """Return the Initial Loss Note message, prefixed with *marker* when given."""

    link = build_loss_note_link(job_number, customer_name)
    text = f":clipboard: Please fill out the *Initial Loss Note* form for *{job_number}*:\n<{link}|Initial Loss Note Form>"
    if marker:
        text = f"{marker} {text}"
    return {"text": text}


def build_crew_chief_prompt() -> Dict[str, Any]:
    blocks: List[Dict[str, Any]] = [
        {
            "type": "section",
            "block_id": CREW_CHIEF_BLOCK_ID,
            "text": {"type": "mrkdwn", "text": "Please select the *Crew Chief* for this job:"},
            "accessory": {
                "type": "users_select",
                "action_id": CREW_CHIEF_ACTION_ID,
                "placeholder": {"type": "plain_text", "text": "Select a user", "emoji": True},
            },
        }
    ]
    return {"text": "Who is the assigned :construction_worker: *Crew Chief*?", "blocks": blocks}


def build_crew_chief_confirmation(crew_chief_name: str) -> Dict[str, Any]:
    return {"text": f":construction_worker: Crew Chief assigned is *{crew_chief_name}*"}


def crew_chief_note(crew_chief_name: str) -> str:
    return f"Crew Chief assigned is: {crew_chief_name}"


def build_moisture_check_message(*, job_number: str, mc_count: int | str, form_date: str) -> Dict[str, Any]:
    """Return the moisture check form prompt for a job channel."""

    title = f"Moisture Check {mc_count} – {form_date}"
    link = f"{MOISTURE_FORM_URL}&{MOISTURE_JOB_ENTRY}={encode_component(job_number)}"
    return {"text": f":droplet: Please fill out the *{title}* for *{job_number}*:\n<{link}|Moisture Check Form>"}


def build_closeout_message(job_number: str) -> Dict[str, Any]:
    return {
        "text": (
            f":white_check_mark: Job completed for *{job_number}*\n"
            "Please ensure all closeout forms are sent for file packaging."
        )
    }


def build_permission_notice(user_id: str) -> str:
    return (
        f"I couldn't add <@{user_id}> to this channel because I don't have permission. "
        "Please invite them manually."
    )
