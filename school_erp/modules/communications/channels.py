"""
Message delivery channels.

Each channel exposes ``send(address, subject, body)`` and returns a dict with
``success`` and, on failure, ``error``. Provider integrations are registered
per app with ``register_channel``; unregistered channels log the message.
"""
import logging

from flask import current_app

logger = logging.getLogger(__name__)

# Recipient attribute each channel delivers to
ADDRESS_FIELDS = {
    'SMS': 'phone',
    'WHATSAPP': 'phone',
    'EMAIL': 'email',
    'IN_APP': 'user_id',
}


class LoggingChannel:
    def __init__(self, name):
        self.name = name

    def send(self, address, subject, body):
        logger.info('%s message to %s: %s', self.name, address, subject or body[:80])
        return {'success': True}


def register_channel(app, name, channel):
    app.extensions.setdefault('message_channels', {})[name] = channel


def get_channel(name):
    channels = current_app.extensions.get('message_channels') or {}
    return channels.get(name) or LoggingChannel(name)


def deliver(channel, address, subject, body):
    """Send through ``channel``; provider exceptions count as a failed delivery."""
    try:
        return channel.send(address, subject, body)
    except Exception as exc:
        logger.exception('%s delivery to %s failed', getattr(channel, 'name', channel), address)
        return {'success': False, 'error': str(exc)[:255]}
