"""Notification delivery package.

Routes dequeued jobs to the right email, attaching rendered report PDFs
where the job kind asks for one, and sends them through the SMTP transport.
"""
