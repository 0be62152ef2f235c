from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags


@shared_task(
    bind=True,
    autoretry_for=(SMTPException,),
    retry_backoff=10,
    retry_kwargs={"max_retries": 3},
)
def send_templated_email(self, to, template_name, context, subject):
    """
    Render an HTML template and send it with a plain-text alternative.
    `context` must be JSON-serializable (it crosses the broker).
    """
    context = dict(context or {})
    context.setdefault("site_url", settings.SITE_URL)

    html_content = render_to_string(template_name, context)
    text_content = strip_tags(html_content)

    msg = EmailMultiAlternatives(
        subject=subject,
        body=text_content,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[to],
    )
    msg.attach_alternative(html_content, "text/html")
    msg.send()
