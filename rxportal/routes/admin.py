"""
Admin Routes

FLOW OVERVIEW
- Blogs: /api/admin/blogs [GET, POST], /blogs/<id> [GET, PUT, DELETE],
  /blogs/<id>/publish [POST], /blogs/<id>/feature [POST]
  • Slug generated from the title when not given and kept unique.
- Email templates: /api/admin/email-templates [GET, POST], /email-templates/<id> [GET, PUT, DELETE],
  /email-templates/<id>/preview [POST]
  • Variables are extracted from {{...}} placeholders on every save. Delete clears the
    template reference on queued emails and logs first.
- Festival themes: /api/admin/festival-themes [GET, POST], /festival-themes/<id> [PUT, DELETE],
  /festival-themes/<id>/toggle [POST], /festival-themes/current [GET, public]
  • Colours must be #RRGGBB; start_date may not be after end_date.
- Announcements: /api/admin/announcements [GET, POST], /announcements/<id> [PUT, DELETE],
  /announcements/active [GET, public]
- Alerts: /api/admin/alerts [GET, POST], /alerts/<id>/read [POST], /alerts/read-all [POST],
  /alerts/<id>/resolve [POST], /alerts/stats [GET]
- Credit terms: /api/admin/credit-terms [GET, POST]
  • Sending creates a pending offer for the pharmacy (see the credit blueprint for the
    pharmacy side).
"""

import re
from datetime import datetime, date

from flask import Blueprint, jsonify, request, current_app

from ..models import (db, User, Blog, EmailTemplate, EmailQueue, EmailLog, FestivalTheme,
                      Announcement, Alert, SentCreditTerms)
from ..models.utils import slugify
from ..utils.api_utils import get_json_payload, apply_fields, paginate, parse_date, parse_datetime
from ..utils.auth_utils import admin_required, get_current_user
from ..utils.credit_terms import send_credit_terms
from ..utils.email_service import render_template_string
from ..utils.errors import ValidationError, NotFoundError

admin_bp = Blueprint('admin', __name__)

HEX_COLOR = re.compile(r'^#[0-9A-Fa-f]{6}$')
SAMPLE_VARIABLES = {
    'user_name': 'John Smith',
    'first_name': 'John',
    'last_name': 'Smith',
    'company_name': 'Sample Pharmacy',
    'email': 'john@example.com',
    'order_number': 'ORD-20240101-SAMPLE',
    'order_total': '$125.00',
    'order_date': 'January 1, 2024',
    'tracking_number': '1Z999AA10123456784',
    'shop_url': 'https://9rx.com/products',
    'reset_link': 'https://9rx.com/reset-password/sample',
}


def _get_or_404(model, item_id, label):
    item = db.session.get(model, item_id)
    if item is None:
        raise NotFoundError(f"{label} not found")
    return item


def _require_text(data, fields):
    errors = {field: f"{field} is required" for field in fields if not str(data.get(field) or '').strip()}
    if errors:
        raise ValidationError(f"Missing required fields: {', '.join(errors)}", 'MISSING_FIELDS', errors=errors)


# Blogs

def _unique_slug(base, exclude_id=None):
    slug = base or 'post'
    candidate, counter = slug, 2
    while True:
        query = Blog.query.filter(Blog.slug == candidate)
        if exclude_id is not None:
            query = query.filter(Blog.id != exclude_id)
        if query.first() is None:
            return candidate
        candidate = f"{slug}-{counter}"
        counter += 1


@admin_bp.route('/blogs', methods=['GET'])
@admin_required
def list_blogs():
    query = Blog.query
    published = request.args.get('published')
    if published is not None:
        query = query.filter(Blog.is_published.is_(published.lower() == 'true'))
    category = request.args.get('category')
    if category:
        query = query.filter(Blog.category == category)
    page = paginate(query.order_by(Blog.created_at.desc()), lambda blog: blog.to_dict())
    return jsonify({'success': True, **page})


@admin_bp.route('/blogs', methods=['POST'])
@admin_required
def create_blog():
    data = get_json_payload()
    _require_text(data, ('title',))
    fields = {field: data[field] for field in Blog.EDITABLE_FIELDS if field in data}
    fields['slug'] = _unique_slug(slugify(data.get('slug') or data['title']))
    blog = Blog(**fields)
    db.session.add(blog)
    db.session.commit()
    return jsonify({'success': True, 'blog': blog.to_dict()}), 201


@admin_bp.route('/blogs/<int:blog_id>', methods=['GET'])
@admin_required
def get_blog(blog_id):
    return jsonify({'success': True, 'blog': _get_or_404(Blog, blog_id, 'Blog').to_dict()})


@admin_bp.route('/blogs/<int:blog_id>', methods=['PUT'])
@admin_required
def update_blog(blog_id):
    blog = _get_or_404(Blog, blog_id, 'Blog')
    data = get_json_payload()
    if 'title' in data:
        _require_text(data, ('title',))
    apply_fields(blog, data, [f for f in Blog.EDITABLE_FIELDS if f not in ('slug', 'is_published')])
    if data.get('slug'):
        blog.slug = _unique_slug(slugify(data['slug']), exclude_id=blog.id)
    if 'is_published' in data:
        blog.set_published(data['is_published'])
    db.session.commit()
    return jsonify({'success': True, 'blog': blog.to_dict()})


@admin_bp.route('/blogs/<int:blog_id>', methods=['DELETE'])
@admin_required
def delete_blog(blog_id):
    db.session.delete(_get_or_404(Blog, blog_id, 'Blog'))
    db.session.commit()
    return jsonify({'success': True, 'message': 'Blog deleted'})


@admin_bp.route('/blogs/<int:blog_id>/publish', methods=['POST'])
@admin_required
def publish_blog(blog_id):
    blog = _get_or_404(Blog, blog_id, 'Blog')
    data = request.get_json(silent=True) or {}
    blog.set_published(data.get('is_published', not blog.is_published))
    db.session.commit()
    return jsonify({'success': True, 'blog': blog.to_dict()})


@admin_bp.route('/blogs/<int:blog_id>/feature', methods=['POST'])
@admin_required
def feature_blog(blog_id):
    blog = _get_or_404(Blog, blog_id, 'Blog')
    data = request.get_json(silent=True) or {}
    blog.is_featured = bool(data.get('is_featured', not blog.is_featured))
    db.session.commit()
    return jsonify({'success': True, 'blog': blog.to_dict()})


# Email templates

@admin_bp.route('/email-templates', methods=['GET'])
@admin_required
def list_templates():
    query = EmailTemplate.query
    template_type = request.args.get('type')
    if template_type:
        query = query.filter(EmailTemplate.template_type == template_type)
    templates = query.order_by(EmailTemplate.name.asc()).all()
    return jsonify({'success': True, 'templates': [t.to_dict() for t in templates]})


@admin_bp.route('/email-templates', methods=['POST'])
@admin_required
def create_template():
    data = get_json_payload()
    _require_text(data, ('name', 'subject', 'html_content'))
    template = apply_fields(EmailTemplate(), data, [f for f in EmailTemplate.EDITABLE_FIELDS if f != 'variables'])
    template.variables = template.extract_variables()
    db.session.add(template)
    db.session.commit()
    return jsonify({'success': True, 'template': template.to_dict()}), 201


@admin_bp.route('/email-templates/<int:template_id>', methods=['GET'])
@admin_required
def get_template(template_id):
    return jsonify({'success': True,
                    'template': _get_or_404(EmailTemplate, template_id, 'Email template').to_dict()})


@admin_bp.route('/email-templates/<int:template_id>', methods=['PUT'])
@admin_required
def update_template(template_id):
    template = _get_or_404(EmailTemplate, template_id, 'Email template')
    data = get_json_payload()
    _require_text({**template.to_dict(), **data}, ('name', 'subject', 'html_content'))
    apply_fields(template, data, [f for f in EmailTemplate.EDITABLE_FIELDS if f != 'variables'])
    template.variables = template.extract_variables()
    db.session.commit()
    return jsonify({'success': True, 'template': template.to_dict()})


@admin_bp.route('/email-templates/<int:template_id>', methods=['DELETE'])
@admin_required
def delete_template(template_id):
    template = _get_or_404(EmailTemplate, template_id, 'Email template')
    EmailQueue.query.filter_by(template_id=template.id).update({'template_id': None})
    EmailLog.query.filter_by(template_id=template.id).update({'template_id': None})
    db.session.delete(template)
    db.session.commit()
    current_app.logger.info(f"Email template {template_id} deleted")
    return jsonify({'success': True, 'message': 'Template deleted'})


@admin_bp.route('/email-templates/<int:template_id>/preview', methods=['POST'])
@admin_required
def preview_template(template_id):
    template = _get_or_404(EmailTemplate, template_id, 'Email template')
    data = request.get_json(silent=True) or {}
    variables = {name: SAMPLE_VARIABLES.get(name, f"[{name}]") for name in template.extract_variables()}
    variables.update(data.get('variables') or {})
    return jsonify({
        'success': True,
        'subject': render_template_string(template.subject, variables),
        'html': render_template_string(template.html_content, variables),
        'variables': variables,
    })


# Festival themes

def _theme_fields(data, theme=None):
    for field in FestivalTheme.COLOR_FIELDS:
        if field in data and data[field] and not HEX_COLOR.match(str(data[field])):
            raise ValidationError(f"{field} must be a #RRGGBB colour", errors={field: 'Invalid colour'})
    if 'effects' in data and not isinstance(data['effects'], list):
        raise ValidationError('effects must be a list', errors={'effects': 'Must be a list'})

    start = parse_date(data['start_date'], 'start_date') if 'start_date' in data else (theme.start_date if theme else None)
    end = parse_date(data['end_date'], 'end_date') if 'end_date' in data else (theme.end_date if theme else None)
    if start and end and start > end:
        raise ValidationError('Start date must be before end date', errors={'end_date': 'Before start date'})
    return {'start_date': parse_date, 'end_date': parse_date}


@admin_bp.route('/festival-themes', methods=['GET'])
@admin_required
def list_themes():
    themes = FestivalTheme.query.order_by(FestivalTheme.priority.desc(), FestivalTheme.start_date.asc()).all()
    return jsonify({'success': True, 'themes': [t.to_dict() for t in themes]})


@admin_bp.route('/festival-themes', methods=['POST'])
@admin_required
def create_theme():
    data = get_json_payload()
    _require_text(data, ('name',))
    converters = _theme_fields(data)
    theme = FestivalTheme(name=data['name'], slug=slugify(data.get('slug') or data['name']))
    apply_fields(theme, data, [f for f in FestivalTheme.EDITABLE_FIELDS if f not in ('name', 'slug')], converters)
    if FestivalTheme.query.filter_by(slug=theme.slug).first():
        raise ValidationError('A theme with this slug already exists', 'DUPLICATE_SLUG')
    db.session.add(theme)
    db.session.commit()
    return jsonify({'success': True, 'theme': theme.to_dict()}), 201


@admin_bp.route('/festival-themes/<int:theme_id>', methods=['PUT'])
@admin_required
def update_theme(theme_id):
    theme = _get_or_404(FestivalTheme, theme_id, 'Festival theme')
    data = get_json_payload()
    converters = _theme_fields(data, theme)
    apply_fields(theme, data, [f for f in FestivalTheme.EDITABLE_FIELDS if f != 'slug'], converters)
    db.session.commit()
    return jsonify({'success': True, 'theme': theme.to_dict()})


@admin_bp.route('/festival-themes/<int:theme_id>', methods=['DELETE'])
@admin_required
def delete_theme(theme_id):
    db.session.delete(_get_or_404(FestivalTheme, theme_id, 'Festival theme'))
    db.session.commit()
    return jsonify({'success': True, 'message': 'Theme deleted'})


@admin_bp.route('/festival-themes/<int:theme_id>/toggle', methods=['POST'])
@admin_required
def toggle_theme(theme_id):
    theme = _get_or_404(FestivalTheme, theme_id, 'Festival theme')
    theme.is_active = not theme.is_active
    db.session.commit()
    return jsonify({'success': True, 'theme': theme.to_dict()})


def current_festival_theme(today=None):
    """Highest priority active theme whose date window covers today"""
    today = today or date.today()
    themes = (FestivalTheme.query
              .filter(FestivalTheme.is_active.is_(True))
              .order_by(FestivalTheme.priority.desc(), FestivalTheme.id.asc())
              .all())
    return next((theme for theme in themes if theme.covers(today)), None)


@admin_bp.route('/festival-themes/current', methods=['GET'])
def current_theme():
    theme = current_festival_theme()
    return jsonify({'success': True, 'theme': theme.to_dict() if theme else None})


# Announcements

def _announcement_converters(data, announcement=None):
    if 'announcement_type' in data and data['announcement_type'] not in Announcement.TYPES:
        raise ValidationError(f"announcement_type must be one of {', '.join(Announcement.TYPES)}")
    if 'target_audience' in data and data['target_audience'] not in Announcement.AUDIENCES:
        raise ValidationError(f"target_audience must be one of {', '.join(Announcement.AUDIENCES)}")
    start = parse_datetime(data['start_date'], 'start_date') if 'start_date' in data else (
        announcement.start_date if announcement else None)
    end = parse_datetime(data['end_date'], 'end_date') if 'end_date' in data else (
        announcement.end_date if announcement else None)
    if start and end and start >= end:
        raise ValidationError('Start date must be before end date', errors={'end_date': 'Before start date'})
    return {'start_date': parse_datetime, 'end_date': parse_datetime}


@admin_bp.route('/announcements', methods=['GET'])
@admin_required
def list_announcements():
    announcements = Announcement.query.order_by(Announcement.priority.desc(),
                                                Announcement.created_at.desc()).all()
    return jsonify({'success': True, 'announcements': [a.to_dict() for a in announcements]})


@admin_bp.route('/announcements', methods=['POST'])
@admin_required
def create_announcement():
    data = get_json_payload()
    _require_text(data, ('title', 'message'))
    converters = _announcement_converters(data)
    announcement = apply_fields(Announcement(), data, Announcement.EDITABLE_FIELDS, converters)
    db.session.add(announcement)
    db.session.commit()
    return jsonify({'success': True, 'announcement': announcement.to_dict()}), 201


@admin_bp.route('/announcements/<int:announcement_id>', methods=['PUT'])
@admin_required
def update_announcement(announcement_id):
    announcement = _get_or_404(Announcement, announcement_id, 'Announcement')
    data = get_json_payload()
    converters = _announcement_converters(data, announcement)
    apply_fields(announcement, data, Announcement.EDITABLE_FIELDS, converters)
    db.session.commit()
    return jsonify({'success': True, 'announcement': announcement.to_dict()})


@admin_bp.route('/announcements/<int:announcement_id>', methods=['DELETE'])
@admin_required
def delete_announcement(announcement_id):
    db.session.delete(_get_or_404(Announcement, announcement_id, 'Announcement'))
    db.session.commit()
    return jsonify({'success': True, 'message': 'Announcement deleted'})


@admin_bp.route('/announcements/active', methods=['GET'])
def active_announcements():
    user = get_current_user()
    audience = request.args.get('audience') or (user.role if user else None)
    now = datetime.utcnow()
    announcements = [a for a in Announcement.query.order_by(Announcement.priority.desc()).all()
                     if a.is_visible(now, audience)]
    return jsonify({'success': True, 'announcements': [a.to_dict() for a in announcements]})


# Alerts

@admin_bp.route('/alerts', methods=['GET'])
@admin_required
def list_alerts():
    query = Alert.query
    for field in ('severity', 'category'):
        if request.args.get(field):
            query = query.filter(getattr(Alert, field) == request.args[field])
    if request.args.get('unread', '').lower() == 'true':
        query = query.filter(Alert.is_read.is_(False))
    resolved = request.args.get('resolved')
    query = query.filter(Alert.is_resolved.is_(resolved is not None and resolved.lower() == 'true'))
    page = paginate(query.order_by(Alert.created_at.desc()), lambda alert: alert.to_dict())
    return jsonify({'success': True, **page})


@admin_bp.route('/alerts', methods=['POST'])
@admin_required
def create_alert():
    data = get_json_payload()
    _require_text(data, ('title',))
    if data.get('severity', 'info') not in Alert.SEVERITIES:
        raise ValidationError(f"severity must be one of {', '.join(Alert.SEVERITIES)}")
    if data.get('category', 'system') not in Alert.CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(Alert.CATEGORIES)}")
    alert = Alert(
        title=data['title'],
        message=data.get('message'),
        severity=data.get('severity', 'info'),
        category=data.get('category', 'system'),
        entity_type=data.get('entity_type'),
        entity_id=str(data['entity_id']) if data.get('entity_id') is not None else None,
        alert_metadata=data.get('metadata') or {},
        expires_at=parse_datetime(data.get('expires_at'), 'expires_at'),
    )
    db.session.add(alert)
    db.session.commit()
    return jsonify({'success': True, 'alert': alert.to_dict()}), 201


@admin_bp.route('/alerts/<int:alert_id>/read', methods=['POST'])
@admin_required
def read_alert(alert_id):
    alert = _get_or_404(Alert, alert_id, 'Alert')
    alert.is_read = True
    db.session.commit()
    return jsonify({'success': True, 'alert': alert.to_dict()})


@admin_bp.route('/alerts/read-all', methods=['POST'])
@admin_required
def read_all_alerts():
    updated = Alert.query.filter(Alert.is_read.is_(False)).update({'is_read': True})
    db.session.commit()
    return jsonify({'success': True, 'updated': updated})


@admin_bp.route('/alerts/<int:alert_id>/resolve', methods=['POST'])
@admin_required
def resolve_alert(alert_id):
    alert = _get_or_404(Alert, alert_id, 'Alert')
    alert.resolve(get_current_user().id)
    return jsonify({'success': True, 'alert': alert.to_dict()})


@admin_bp.route('/alerts/stats', methods=['GET'])
@admin_required
def alert_stats():
    open_alerts = Alert.query.filter(Alert.is_resolved.is_(False)).all()
    stats = {'total': len(open_alerts), 'unread': sum(1 for a in open_alerts if not a.is_read)}
    for severity in Alert.SEVERITIES:
        stats[severity] = sum(1 for a in open_alerts if a.severity == severity)
    return jsonify({'success': True, 'stats': stats})


# Credit terms

@admin_bp.route('/credit-terms', methods=['GET'])
@admin_required
def list_credit_terms():
    query = SentCreditTerms.query
    if request.args.get('user_id'):
        profile = User.query.filter_by(user_id=request.args['user_id']).first()
        if profile is None:
            raise NotFoundError('User not found', 'USER_NOT_FOUND')
        query = query.filter(SentCreditTerms.user_id == profile.id)
    if request.args.get('status'):
        query = query.filter(SentCreditTerms.status == request.args['status'])
    terms = query.order_by(SentCreditTerms.sent_at.desc()).all()
    return jsonify({'success': True, 'terms': [t.to_dict() for t in terms]})


@admin_bp.route('/credit-terms', methods=['POST'])
@admin_required
def create_credit_terms():
    data = get_json_payload(required=('user_id', 'credit_limit'))
    profile = User.query.filter_by(user_id=data['user_id']).first()
    if profile is None:
        raise NotFoundError('User not found', 'USER_NOT_FOUND')
    terms = send_credit_terms(profile, get_current_user(), data['credit_limit'],
                              net_terms=data.get('net_terms', 30),
                              interest_rate=data.get('interest_rate', 0),
                              message=data.get('custom_message'),
                              expires_in_days=data.get('expires_in_days', 30))
    return jsonify({'success': True, 'terms': terms.to_dict()}), 201
