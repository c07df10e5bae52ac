"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi run
    flask --app wsgi deduplicate-stakeholders --name "Jane Doe"
    flask --app wsgi db migrate -m "description"
"""

from storydesk import create_app

app = create_app()
