"""Messages, announcements and emergency alerts."""
import logging
import re
from collections import Counter
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from school_erp.audit import record_tenant_event
from school_erp.errors import BusinessRuleError, ConflictError, InvalidStateError, ValidationError
from school_erp.models.tenant import (
    AlertResponse, Announcement, AnnouncementAcknowledgment, AnnouncementAttachment, CommunicationCampaign,
    EmergencyAlert, Message, MessageRecipient, MessageTemplate, ParentStudentLink, Student, TeacherAssignment,
    User,
)
from school_erp.modules.attendance.services import percentage
from school_erp.modules.common import get_or_404
from school_erp.modules.communications.channels import ADDRESS_FIELDS, deliver, get_channel
from school_erp.rbac import ACCOUNTANT, PARENT, SCHOOL_ADMIN, STUDENT, TEACHER, TRUST_ADMIN

logger = logging.getLogger(__name__)

AUDIENCE_ROLES = {
    'STUDENTS': (STUDENT,),
    'PARENTS': (PARENT,),
    'TEACHERS': (TEACHER,),
    'ADMINS': (TRUST_ADMIN, SCHOOL_ADMIN, ACCOUNTANT),
}

STAT_KEYS = {
    'SMS': 'sms_sent',
    'EMAIL': 'emails_sent',
    'WHATSAPP': 'whatsapp_sent',
    'IN_APP': 'in_app_sent',
}

VARIABLE = re.compile(r'\{\{\s*(\w+)\s*\}\}')


def render_template(text, variables):
    """Replace ``{{name}}`` placeholders; unknown names are left as they are."""
    if not text:
        return text
    return VARIABLE.sub(lambda match: str(variables.get(match.group(1), match.group(0))), text)


def _class_scoped_users(session, class_ids):
    """Parents of students in ``class_ids`` and teachers allocated to them."""
    parents = session.query(ParentStudentLink.parent_id) \
        .join(Student, ParentStudentLink.student_id == Student.id) \
        .filter(Student.class_id.in_(class_ids))
    teachers = session.query(TeacherAssignment.teacher_id).filter(TeacherAssignment.class_id.in_(class_ids))
    return {row[0] for row in parents} | {row[0] for row in teachers}


def audience_users(session, audience, specific=None, school_ids=None, class_ids=None):
    """Active users addressed by an audience, optionally narrowed to schools and classes."""
    query = session.query(User).filter(User.is_active.is_(True))
    if audience == 'CUSTOM':
        if not specific:
            raise ValidationError('specific_recipients is required for CUSTOM audience')
        query = query.filter(User.id.in_(specific))
    elif audience in AUDIENCE_ROLES:
        query = query.filter(User.role.in_(AUDIENCE_ROLES[audience]))

    if school_ids:
        query = query.filter(User.school_id.in_(school_ids))
    if class_ids:
        query = query.filter(User.id.in_(_class_scoped_users(session, class_ids) or {0}))
    return query.order_by(User.id).all()


def _user_name(session, user_id):
    user = session.get(User, user_id) if user_id else None
    return user.full_name if user is not None else 'System'


# Messages

def _check_addresses(message_type, recipients):
    field = ADDRESS_FIELDS[message_type]
    issues = [
        {'field': f'recipients[{index}].{field}', 'message': f'{field} is required for {message_type} messages'}
        for index, recipient in enumerate(recipients)
        if not recipient.get(field)
    ]
    if issues:
        raise ValidationError(issues[0]['message'], details={'issues': issues})


def _check_rate_limit(session, user_id, count, now):
    limit = current_app.config['MESSAGE_HOURLY_LIMIT']
    recent = session.query(func.count(MessageRecipient.id)) \
        .join(Message, MessageRecipient.message_id == Message.id) \
        .filter(Message.sender_id == user_id, Message.created_at >= now - timedelta(hours=1)).scalar() or 0
    if recent + count > limit:
        logger.warning('Message rate limit hit by user %s (%s sent in the last hour)', user_id, recent)
        raise BusinessRuleError(f'Rate limit exceeded: at most {limit} recipients per hour. Please try again later.')


def send_message(session, data, trust_id=None, user_id=None, now=None):
    now = now or datetime.utcnow()
    message_type = data['message_type']
    recipients = data['recipients']
    _check_addresses(message_type, recipients)

    variables = data.get('variables') or {}
    if not isinstance(variables, dict):
        raise ValidationError('variables must be an object')
    scheduled_at = data.get('schedule_at')
    if scheduled_at is not None and scheduled_at <= now:
        raise ValidationError('schedule_at must be in the future')

    subject, body = data.get('subject'), data['content']
    if data.get('template_id'):
        template = get_or_404(session, MessageTemplate, data['template_id'], 'Template not found')
        body = template.body
        subject = template.subject or subject
    subject = render_template(subject, variables)
    body = render_template(body, variables)

    _check_rate_limit(session, user_id, len(recipients), now)

    message = Message(
        message_type=message_type,
        recipient_type=data['recipient_type'],
        subject=subject,
        body=body,
        template_id=data.get('template_id'),
        priority=data.get('priority') or 'MEDIUM',
        status='PENDING',
        sender_id=user_id,
        scheduled_at=scheduled_at,
        created_at=now,
    )
    session.add(message)
    session.flush()

    channel = None if scheduled_at else get_channel(message_type)
    field = ADDRESS_FIELDS[message_type]
    rows = []
    for recipient in recipients:
        row = MessageRecipient(
            message_id=message.id,
            recipient_user_id=recipient.get('user_id'),
            recipient_name=recipient.get('name'),
            recipient_phone=recipient.get('phone'),
            recipient_email=recipient.get('email'),
            status='PENDING',
        )
        if channel is not None:
            result = deliver(channel, recipient[field], subject, body)
            if result.get('success'):
                row.status = 'DELIVERED'
                row.delivered_at = now
            else:
                row.status = 'FAILED'
                row.error_message = result.get('error') or 'Delivery failed'
        session.add(row)
        rows.append((row, recipient[field]))

    delivered = sum(1 for row, _ in rows if row.status == 'DELIVERED')
    failed = sum(1 for row, _ in rows if row.status == 'FAILED')
    if channel is not None:
        message.status = 'FAILED' if failed == len(rows) else 'SENT'
        message.sent_at = now
    session.flush()
    record_tenant_event(session, 'MESSAGE_SENT', trust_id=trust_id, user_id=user_id, activity_id='09-001',
                        entity_type='message', entity_id=message.id,
                        details={'message_type': message_type, 'recipients': len(rows), 'status': message.status})
    session.commit()

    attempted = delivered + failed
    return {
        'message_id': message.id,
        'batch_id': f'BATCH_{message.id}_{now:%Y%m%d%H%M%S}',
        'message_type': message_type,
        'total_recipients': len(rows),
        'subject': subject,
        'content': body,
        'status': message.status,
        'scheduled_at': message.scheduled_at,
        'sent_at': message.sent_at,
        'recipients': [
            {
                'recipient_id': row.id,
                'recipient_address': str(address),
                'recipient_name': row.recipient_name,
                'status': row.status,
                'delivered_at': row.delivered_at,
                'error_message': row.error_message,
            }
            for row, address in rows
        ],
        'delivery_stats': {
            'total_sent': attempted,
            'total_delivered': delivered,
            'total_failed': failed,
            'delivery_rate': percentage(delivered, attempted),
        },
        'created_at': message.created_at,
    }


# Announcements

def acknowledgment_stats(session, announcement, total_recipients):
    acknowledged = session.query(func.count(AnnouncementAcknowledgment.id)) \
        .filter(AnnouncementAcknowledgment.announcement_id == announcement.id).scalar() or 0
    return {
        'total_recipients': total_recipients,
        'acknowledged_count': acknowledged,
        'pending_count': max(total_recipients - acknowledged, 0),
        'acknowledgment_rate': percentage(acknowledged, total_recipients),
    }


def create_announcement(session, data, trust_id=None, user_id=None, now=None):
    now = now or datetime.utcnow()
    display_from = data.get('display_from') or now
    display_until = data.get('display_until')
    if display_until is not None and display_until <= display_from:
        raise ValidationError('Display until date must be after display from date')

    audience = data['target_audience']
    school_ids = [data['school_id']] if data.get('school_id') else None
    if audience == 'CUSTOM':
        total = len(set(data.get('specific_recipients') or []))
        if not total:
            raise ValidationError('specific_recipients is required for CUSTOM audience')
    else:
        total = len(audience_users(session, audience, school_ids=school_ids, class_ids=data.get('class_ids')))

    campaign = CommunicationCampaign(
        campaign_name=data['title'],
        campaign_type='ANNOUNCEMENT',
        recipient_count=total,
        status='SENT',
        created_by=user_id,
    )
    session.add(campaign)
    session.flush()

    announcement = Announcement(
        campaign_id=campaign.id,
        title=data['title'],
        content=data['content'],
        audience=audience,
        school_id=data.get('school_id'),
        class_ids=data.get('class_ids') or None,
        priority=data.get('priority') or 'MEDIUM',
        category=data.get('category') or 'GENERAL',
        display_from=display_from,
        display_until=display_until,
        is_dismissible=bool(data.get('is_dismissible', True)),
        requires_acknowledgment=bool(data.get('requires_acknowledgment')),
        created_by=user_id,
    )
    session.add(announcement)
    session.flush()

    attachments = []
    for item in data.get('attachments') or []:
        session.add(AnnouncementAttachment(announcement_id=announcement.id, file_name=item['file_name'],
                                           file_path=item['file_path'], file_size=item['file_size']))
        attachments.append(dict(item))

    record_tenant_event(session, 'ANNOUNCEMENT_CREATED', trust_id=trust_id, user_id=user_id, activity_id='09-002',
                        entity_type='announcement', entity_id=announcement.id,
                        details={'audience': audience, 'recipients': total})
    session.commit()

    result = {
        'announcement_id': announcement.id,
        'campaign_id': campaign.id,
        'title': announcement.title,
        'content': announcement.content,
        'target_audience': audience,
        'priority': announcement.priority,
        'category': announcement.category,
        'total_recipients': total,
        'display_from': announcement.display_from,
        'display_until': announcement.display_until,
        'is_active': display_from <= now and (display_until is None or display_until > now),
        'requires_acknowledgment': announcement.requires_acknowledgment,
        'attachments': attachments,
        'created_at': announcement.created_at,
        'created_by': _user_name(session, user_id),
    }
    if announcement.requires_acknowledgment:
        result['acknowledgment_stats'] = acknowledgment_stats(session, announcement, total)
    return result


def acknowledge_announcement(session, announcement_id, user_id, now=None):
    now = now or datetime.utcnow()
    announcement = get_or_404(session, Announcement, announcement_id, 'Announcement not found')
    if not announcement.requires_acknowledgment:
        raise BusinessRuleError('This announcement does not require acknowledgment')
    if announcement.display_until is not None and announcement.display_until <= now:
        raise InvalidStateError('Announcement is no longer displayed')
    existing = session.query(AnnouncementAcknowledgment).filter_by(
        announcement_id=announcement.id, user_id=user_id,
    ).first()
    if existing is not None:
        raise ConflictError('Announcement already acknowledged')

    ack = AnnouncementAcknowledgment(announcement_id=announcement.id, user_id=user_id, acknowledged_at=now)
    session.add(ack)
    session.commit()

    campaign = session.get(CommunicationCampaign, announcement.campaign_id) if announcement.campaign_id else None
    total = campaign.recipient_count if campaign is not None else 0
    return {
        'announcement_id': announcement.id,
        'user_id': user_id,
        'acknowledged_at': ack.acknowledged_at,
        'acknowledgment_stats': acknowledgment_stats(session, announcement, total),
    }


# Emergency alerts

def response_stats(session, alert, total_recipients):
    breakdown = Counter(dict(
        session.query(AlertResponse.response, func.count(AlertResponse.id))
        .filter(AlertResponse.alert_id == alert.id).group_by(AlertResponse.response).all()
    ))
    responses = sum(breakdown.values())
    return {
        'total_responses': responses,
        'response_rate': percentage(responses, total_recipients),
        'response_breakdown': {option: breakdown.get(option, 0) for option in alert.response_options or []},
    }


def _broadcast(users, channels, title, body):
    stats = {key: 0 for key in STAT_KEYS.values()}
    delivered = failed = 0
    for name in channels:
        channel = get_channel(name)
        field = ADDRESS_FIELDS[name]
        for user in users:
            address = user.id if field == 'user_id' else getattr(user, field)
            if not address:
                failed += 1
                continue
            stats[STAT_KEYS[name]] += 1
            if deliver(channel, address, title, body).get('success'):
                delivered += 1
            else:
                failed += 1
    attempted = delivered + failed
    stats.update({
        'total_delivered': delivered,
        'total_failed': failed,
        'delivery_rate': percentage(delivered, attempted),
    })
    return stats


def create_alert(session, data, trust_id=None, user_id=None, now=None):
    now = now or datetime.utcnow()
    channels = list(dict.fromkeys(data['channels']))
    if data['severity'] == 'EMERGENCY' and 'SMS' not in channels:
        raise BusinessRuleError('Emergency alerts must include SMS channel')
    options = [option for option in data.get('response_options') or [] if option]
    if data.get('requires_response') and not options:
        raise ValidationError('Response options are required when response is enabled')
    if data.get('expires_at') is not None and data['expires_at'] <= now:
        raise ValidationError('expires_at must be in the future')

    scope = data.get('geographic_scope') or {}
    users = audience_users(session, data['target_audience'], data.get('specific_recipients'),
                           school_ids=scope.get('school_ids'), class_ids=scope.get('class_ids'))

    campaign = CommunicationCampaign(
        campaign_name=f"Emergency Alert: {data['alert_title']}",
        campaign_type='EMERGENCY_ALERT',
        recipient_count=len(users),
        status='SENT',
        created_by=user_id,
    )
    session.add(campaign)
    session.flush()

    alert = EmergencyAlert(
        campaign_id=campaign.id,
        title=data['alert_title'],
        message=data['alert_message'],
        alert_type=data['alert_type'],
        severity=data['severity'],
        channels=channels,
        audience=data['target_audience'],
        school_ids=scope.get('school_ids') or None,
        class_ids=scope.get('class_ids') or None,
        requires_response=bool(data.get('requires_response')),
        response_options=options or None,
        auto_escalate=bool(data.get('auto_escalate')),
        escalation_delay_minutes=data.get('escalation_delay_minutes'),
        expires_at=data.get('expires_at'),
        created_by=user_id,
    )
    session.add(alert)
    session.flush()

    stats = _broadcast(users, channels, alert.title, alert.message)
    logger.warning('Emergency alert %s (%s) broadcast to %s users on %s',
                   alert.id, alert.severity, len(users), ', '.join(channels))
    record_tenant_event(session, 'EMERGENCY_ALERT_SENT', trust_id=trust_id, user_id=user_id, activity_id='09-003',
                        entity_type='emergency_alert', entity_id=alert.id,
                        details={'severity': alert.severity, 'channels': channels, 'recipients': len(users)})
    session.commit()

    result = {
        'alert_id': alert.id,
        'campaign_id': campaign.id,
        'alert_title': alert.title,
        'alert_message': alert.message,
        'alert_type': alert.alert_type,
        'severity': alert.severity,
        'channels': channels,
        'total_recipients': len(users),
        'broadcast_stats': stats,
        'status': 'FAILED' if stats['total_failed'] and not stats['total_delivered'] else 'SENT',
        'sent_at': now,
        'expires_at': alert.expires_at,
        'created_at': alert.created_at,
        'created_by': _user_name(session, user_id),
    }
    if alert.requires_response:
        result['response_stats'] = response_stats(session, alert, len(users))
    return result


def respond_to_alert(session, alert_id, data, user_id, now=None):
    now = now or datetime.utcnow()
    alert = get_or_404(session, EmergencyAlert, alert_id, 'Alert not found')
    if not alert.requires_response:
        raise BusinessRuleError('This alert does not accept responses')
    if alert.expires_at is not None and alert.expires_at <= now:
        raise InvalidStateError('Alert has expired')
    if data['response'] not in (alert.response_options or []):
        raise ValidationError(f"Response must be one of: {', '.join(alert.response_options or [])}")
    if session.query(AlertResponse).filter_by(alert_id=alert.id, user_id=user_id).first() is not None:
        raise ConflictError('Response already recorded for this alert')

    row = AlertResponse(alert_id=alert.id, user_id=user_id, response=data['response'], responded_at=now)
    session.add(row)
    session.commit()

    campaign = session.get(CommunicationCampaign, alert.campaign_id) if alert.campaign_id else None
    return {
        'alert_id': alert.id,
        'user_id': user_id,
        'response': row.response,
        'responded_at': row.responded_at,
        'response_stats': response_stats(session, alert, campaign.recipient_count if campaign else 0),
    }
