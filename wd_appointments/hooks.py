app_name = "wd_appointments"
app_title = "WD Appointments"
app_publisher = "WD Appointments contributors"
app_description = "Booking forms with weekly availability, conflict-free reservations and calendar sync"
app_email = "dev@wd-appointments.local"
app_license = "mit"

# Apps
# ------------------

# required_apps = []

# Includes in <head>
# ------------------

# include js, css files in header of web template
# web_include_css = "/assets/wd_appointments/css/wd_appointments.css"
# web_include_js = "/assets/wd_appointments/js/wd_appointments.js"

# Document Events
# ---------------
# Hook on document methods and events

# doc_events = {
# 	"*": {
# 		"on_update": "method",
# 	}
# }

# Scheduled Tasks
# ---------------

scheduler_events = {
	"cron": {
		"*/15 * * * *": [  # Cada 15 minutos
			"wd_appointments.wd_appointments.services.complete_past_appointments_job"
		]
	}
}

# Testing
# -------

# before_tests = "wd_appointments.install.before_tests"

# Overriding Methods
# ------------------------------

# override_whitelisted_methods = {
# 	"frappe.desk.doctype.event.event.get_events": "wd_appointments.event.get_events"
# }
