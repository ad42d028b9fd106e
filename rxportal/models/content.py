"""
Content Models

Admin-managed site content: Blog posts, FestivalTheme banners, Announcements and
operational Alerts. Each model lists its EDITABLE_FIELDS, which the admin CRUD routes
use to whitelist incoming JSON.
"""

from datetime import datetime, date
from decimal import Decimal
from .database import db
from .utils import slugify


class ContentMixin:
    """Column-driven serialization shared by the admin-managed content models"""

    EDITABLE_FIELDS = ()

    def to_dict(self):
        data = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = float(value)
            data[column.name] = value
        return data


class Blog(ContentMixin, db.Model):
    __tablename__ = 'blogs'

    EDITABLE_FIELDS = ('title', 'slug', 'excerpt', 'content', 'featured_image', 'category',
                       'tags', 'author_name', 'meta_title', 'meta_description',
                       'is_published', 'is_featured')

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False)
    excerpt = db.Column(db.Text)
    content = db.Column(db.Text)
    featured_image = db.Column(db.String(500))
    category = db.Column(db.String(80))
    tags = db.Column(db.JSON, default=list)
    author_name = db.Column(db.String(120))
    meta_title = db.Column(db.String(255))
    meta_description = db.Column(db.String(500))
    is_published = db.Column(db.Boolean, default=False)
    is_featured = db.Column(db.Boolean, default=False)
    view_count = db.Column(db.Integer, default=0)
    published_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **fields):
        super().__init__(**fields)
        if not self.slug:
            self.slug = slugify(self.title)
        if self.is_published and not self.published_at:
            self.published_at = datetime.utcnow()

    def set_published(self, published):
        self.is_published = bool(published)
        if self.is_published and not self.published_at:
            self.published_at = datetime.utcnow()


class FestivalTheme(ContentMixin, db.Model):
    __tablename__ = 'festival_themes'

    EDITABLE_FIELDS = ('name', 'slug', 'description', 'start_date', 'end_date',
                       'primary_color', 'secondary_color', 'accent_color', 'background_color',
                       'text_color', 'icon', 'banner_image_url', 'banner_text', 'effects',
                       'is_active', 'auto_activate', 'priority')
    COLOR_FIELDS = ('primary_color', 'secondary_color', 'accent_color', 'background_color',
                    'text_color')

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    primary_color = db.Column(db.String(7), default='#3B82F6')
    secondary_color = db.Column(db.String(7), default='#10B981')
    accent_color = db.Column(db.String(7), default='#F59E0B')
    background_color = db.Column(db.String(7), default='#FFFFFF')
    text_color = db.Column(db.String(7), default='#111827')
    icon = db.Column(db.String(20))
    banner_image_url = db.Column(db.String(500))
    banner_text = db.Column(db.String(255))
    effects = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, default=False)
    auto_activate = db.Column(db.Boolean, default=True)
    priority = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, **fields):
        super().__init__(**fields)
        if not self.slug:
            self.slug = slugify(self.name)

    def covers(self, day):
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True


class Announcement(ContentMixin, db.Model):
    __tablename__ = 'announcements'

    EDITABLE_FIELDS = ('title', 'message', 'announcement_type', 'display_type',
                       'target_audience', 'link_url', 'link_text', 'is_active',
                       'is_dismissible', 'priority', 'start_date', 'end_date')
    TYPES = ('info', 'warning', 'success', 'error', 'promo')
    AUDIENCES = ('all', 'pharmacy', 'group', 'hospital', 'admin')

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    announcement_type = db.Column(db.String(20), default='info')
    display_type = db.Column(db.String(20), default='banner')  # banner, popup, toast
    target_audience = db.Column(db.String(20), default='all')
    link_url = db.Column(db.String(500))
    link_text = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, default=True)
    is_dismissible = db.Column(db.Boolean, default=True)
    priority = db.Column(db.Integer, default=0)
    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def is_visible(self, now=None, audience=None):
        now = now or datetime.utcnow()
        if not self.is_active:
            return False
        if self.start_date and now < self.start_date:
            return False
        if self.end_date and now > self.end_date:
            return False
        if audience and self.target_audience not in ('all', audience):
            return False
        return True


class Alert(ContentMixin, db.Model):
    __tablename__ = 'alerts'

    SEVERITIES = ('critical', 'warning', 'info')
    CATEGORIES = ('inventory', 'orders', 'customers', 'system')

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text)
    severity = db.Column(db.String(20), default='info')
    category = db.Column(db.String(20), default='system')
    entity_type = db.Column(db.String(40))
    entity_id = db.Column(db.String(64))
    alert_metadata = db.Column(db.JSON, default=dict)
    is_read = db.Column(db.Boolean, default=False)
    is_resolved = db.Column(db.Boolean, default=False)
    resolved_at = db.Column(db.DateTime)
    resolved_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime)

    def resolve(self, user_id):
        self.is_resolved = True
        self.resolved_at = datetime.utcnow()
        self.resolved_by = user_id
        db.session.commit()
