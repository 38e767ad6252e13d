"""
Security Utilities for the Booking API

Guest-facing protections for the public booking page:
- Per-IP rate limits, one allowance per endpoint (RATE_LIMITS)
- Honeypot field for bot submissions
- Input sanitization and format checks for request parameters
"""

import json
import re
from typing import Any, Dict, Optional

import frappe
import pytz
from frappe import _
from frappe.utils import cint

# acción -> (requests, segundos)
RATE_LIMITS = {
	"get_available_slots": (30, 60),
	"book_slot": (5, 60),
	"verify_appointment": (10, 60),
}

MAX_CLIENT_DETAILS_BYTES = 4096

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
# Nombres generados por autoname: BF-00001, APT-00042
DOCNAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 ._@-]{0,139}$")


def check_rate_limit(action: str) -> None:
	"""
	Count one request of `action` for the caller's IP.

	Counters live in the Frappe cache (Redis) and expire with the window.

	Raises:
		frappe.TooManyRequestsError: allowance for the window exhausted
	"""
	limit, seconds = RATE_LIMITS[action]
	ip = get_client_ip()
	cache_key = f"wd_appointments:rate_limit:{action}:{ip}"

	hits = cint(frappe.cache.get_value(cache_key) or 0)
	if hits >= limit:
		frappe.logger("wd_appointments").warning(
			f"Rate limit hit on {action} from {ip} ({limit}/{seconds}s)"
		)
		frappe.throw(
			_("Too many requests. Please wait a moment and try again."),
			frappe.TooManyRequestsError
		)

	frappe.cache.set_value(cache_key, hits + 1, expires_in_sec=seconds)


def get_client_ip() -> str:
	"""Caller IP, honouring the first X-Forwarded-For hop behind a proxy."""
	request = getattr(frappe.local, "request", None)
	if not request:
		return "unknown"

	forwarded = request.headers.get("X-Forwarded-For", "")
	if forwarded:
		return forwarded.split(",")[0].strip()

	return (request.headers.get("X-Real-IP") or request.remote_addr or "unknown").strip()


def guard_guest_submission(action: str, honeypot: Optional[str] = None) -> None:
	"""Rate limit plus honeypot check for guest POSTs."""
	check_rate_limit(action)

	if honeypot:
		frappe.log_error(
			title=_("Booking bot detected"),
			message=f"IP: {get_client_ip()}, action: {action}, honeypot: {honeypot[:100]}"
		)
		# Mensaje genérico: no revelar la detección
		frappe.throw(_("Invalid request"), frappe.ValidationError)


def sanitize_string(value: Any, max_length: int = 500) -> Optional[str]:
	"""Strip, truncate and drop control characters. Empty input gives None."""
	if value is None:
		return None

	value = CONTROL_CHARS.sub("", str(value).strip())[:max_length]
	return value or None


def require_string(value: Any, field_name: str, max_length: int = 140) -> str:
	value = sanitize_string(value, max_length)
	if not value:
		frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)
	return value


def validate_email(email: Any, field_name: str = "email") -> str:
	email = require_string(email, field_name)
	if not frappe.utils.validate_email_address(email):
		frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)
	return email


def validate_date_string(value: Any, field_name: str = "date") -> str:
	"""YYYY-MM-DD."""
	value = require_string(value, field_name, 10)
	if not DATE_PATTERN.match(value):
		frappe.throw(_("Invalid {0} format. Use YYYY-MM-DD").format(field_name), frappe.ValidationError)
	return value


def validate_datetime_string(value: Any, field_name: str = "datetime") -> str:
	"""YYYY-MM-DD HH:MM:SS, read later in the host timezone."""
	value = require_string(value, field_name, 19)
	if not DATETIME_PATTERN.match(value):
		frappe.throw(
			_("Invalid {0} format. Use YYYY-MM-DD HH:MM:SS").format(field_name),
			frappe.ValidationError
		)
	return value


def validate_docname(value: Any, field_name: str = "name") -> str:
	"""Document names are restricted to the characters autoname produces."""
	value = require_string(value, field_name)
	if not DOCNAME_PATTERN.match(value):
		frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)
	return value


def validate_timezone(value: Any, field_name: str = "timezone") -> Optional[str]:
	"""Optional IANA zone name sent by the booking page."""
	value = sanitize_string(value, 64)
	if value and value not in pytz.all_timezones_set:
		frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)
	return value


def parse_client_details(value: Any) -> Dict[str, Any]:
	"""
	Extra booking-form answers as a flat JSON object.

	Raises:
		frappe.ValidationError: not an object, or larger than MAX_CLIENT_DETAILS_BYTES
	"""
	if not value:
		return {}

	try:
		details = frappe.parse_json(value) if isinstance(value, str) else value
	except ValueError:
		frappe.throw(_("client_details must be valid JSON"), frappe.ValidationError)

	if not isinstance(details, dict):
		frappe.throw(_("client_details must be a JSON object"), frappe.ValidationError)

	if len(json.dumps(details, default=str)) > MAX_CLIENT_DETAILS_BYTES:
		frappe.throw(_("client_details is too large"), frappe.ValidationError)

	return {
		sanitize_string(key, 64): sanitize_string(item) if isinstance(item, str) else item
		for key, item in details.items()
		if sanitize_string(key, 64)
	}
