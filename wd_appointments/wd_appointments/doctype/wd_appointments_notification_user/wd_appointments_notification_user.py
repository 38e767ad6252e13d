# Copyright (c) 2026, WD Appointments contributors
# For license information, please see license.txt

from frappe.model.document import Document


class WDAppointmentsNotificationUser(Document):
	pass
