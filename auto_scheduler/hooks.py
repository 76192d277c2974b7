app_name = "auto_scheduler"
app_title = "Auto Scheduler"
app_publisher = "Auto Scheduler contributors"
app_description = "Agendamiento automatico de tareas en los huecos libres del calendario"
app_email = "dev@auto-scheduler.local"
app_license = "mit"

# Apps
# ------------------

# required_apps = []

# Scheduled Tasks
# ---------------

scheduler_events = {
	"daily": [  # Libera slots auto-agendados vencidos y re-agenda
		"auto_scheduler.auto_scheduler.scheduling.tasks.reschedule_missed_tasks"
	]
}

# Testing
# -------

# before_tests = "auto_scheduler.install.before_tests"

# Log clearing
# ------------

# default_log_clearing_doctypes = {
# 	"Logging DocType Name": 30  # days to retain logs
# }
