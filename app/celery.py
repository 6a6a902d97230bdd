from celery import Celery

# Worker and beat share this app: celery -A app.celery worker --beat
celery = Celery("slot_notifier")

# Load configuration from app.config.celeryconfig module
celery.config_from_object("app.config.celeryconfig")
