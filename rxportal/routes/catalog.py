"""
Catalog Routes

FLOW OVERVIEW
- /api/catalog/products [GET]
  • Active products with sizes; ?search= (name, SKU, description), ?category=<id>,
    page/per_page pagination. Admins may pass ?include_inactive=true.
- /api/catalog/products/<id> [GET]
- /api/catalog/categories [GET]
- /api/catalog/products [POST], /api/catalog/products/<id> [PUT, DELETE] (admin)
  • Sizes are replaced as a whole on update. Delete deactivates the product so
    existing order lines keep their reference.
"""

from flask import Blueprint, jsonify, request, current_app
from sqlalchemy import or_

from ..models import db, Category, Product, ProductSize
from ..utils.api_utils import get_json_payload, apply_fields, paginate
from ..utils.auth_utils import admin_required, get_current_user
from ..utils.errors import ValidationError, NotFoundError
from ..utils.money import to_decimal

catalog_bp = Blueprint('catalog', __name__)

PRODUCT_FIELDS = ('name', 'sku', 'description', 'category_id', 'image_url', 'is_active')


def _product_or_404(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Product not found', 'PRODUCT_NOT_FOUND')
    return product


def _build_sizes(sizes):
    if not isinstance(sizes, list) or not sizes:
        raise ValidationError('At least one size is required', errors={'sizes': 'At least one size is required'})

    built = []
    for index, size in enumerate(sizes):
        if not isinstance(size, dict) or not str(size.get('size_value') or '').strip():
            raise ValidationError(f"Size {index + 1} needs a size value")
        try:
            price = to_decimal(size.get('price'), default=None)
            shipping = to_decimal(size.get('shipping_cost'))
            case_price = to_decimal(size.get('price_per_case'), default=None)
        except ValueError:
            raise ValidationError(f"Size {index + 1} has an invalid amount")
        if price is None or price < 0:
            raise ValidationError(f"Size {index + 1} needs a price of zero or more")
        built.append(ProductSize(
            size_value=str(size['size_value']).strip(),
            size_unit=size.get('size_unit'),
            sku=size.get('sku'),
            price=price,
            price_per_case=case_price,
            stock=int(size.get('stock') or 0),
            shipping_cost=shipping,
        ))
    return built


def _check_category(category_id):
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError('Category not found', errors={'category_id': 'Unknown category'})


@catalog_bp.route('/products', methods=['GET'])
def list_products():
    query = Product.query
    user = get_current_user()
    include_inactive = request.args.get('include_inactive', '').lower() == 'true'
    if not (include_inactive and user is not None and user.is_admin()):
        query = query.filter(Product.is_active.is_(True))

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern),
                                 Product.description.ilike(pattern)))

    category = request.args.get('category')
    if category:
        query = query.filter(Product.category_id == category)

    page = paginate(query.order_by(Product.name.asc()), lambda product: product.to_dict())
    return jsonify({'success': True, **page})


@catalog_bp.route('/products/<int:product_id>', methods=['GET'])
def get_product(product_id):
    product = _product_or_404(product_id)
    user = get_current_user()
    if not product.is_active and not (user is not None and user.is_admin()):
        raise NotFoundError('Product not found', 'PRODUCT_NOT_FOUND')
    return jsonify({'success': True, 'product': product.to_dict()})


@catalog_bp.route('/categories', methods=['GET'])
def list_categories():
    categories = Category.query.order_by(Category.display_order.asc(), Category.name.asc()).all()
    return jsonify({'success': True, 'categories': [c.to_dict() for c in categories]})


@catalog_bp.route('/products', methods=['POST'])
@admin_required
def create_product():
    data = get_json_payload(required=('name', 'sizes'))
    _check_category(data.get('category_id'))
    if data.get('sku') and Product.query.filter_by(sku=data['sku']).first():
        raise ValidationError('A product with this SKU already exists', 'DUPLICATE_SKU')

    product = apply_fields(Product(), data, PRODUCT_FIELDS)
    product.sizes = _build_sizes(data['sizes'])
    db.session.add(product)
    db.session.commit()
    current_app.logger.info(f"Product {product.id} created: {product.name}")
    return jsonify({'success': True, 'product': product.to_dict()}), 201


@catalog_bp.route('/products/<int:product_id>', methods=['PUT'])
@admin_required
def update_product(product_id):
    product = _product_or_404(product_id)
    data = get_json_payload()
    if 'category_id' in data:
        _check_category(data['category_id'])
    if data.get('sku') and data['sku'] != product.sku and Product.query.filter_by(sku=data['sku']).first():
        raise ValidationError('A product with this SKU already exists', 'DUPLICATE_SKU')

    apply_fields(product, data, PRODUCT_FIELDS)
    if 'sizes' in data:
        product.sizes = _build_sizes(data['sizes'])
    db.session.commit()
    return jsonify({'success': True, 'product': product.to_dict()})


@catalog_bp.route('/products/<int:product_id>', methods=['DELETE'])
@admin_required
def delete_product(product_id):
    product = _product_or_404(product_id)
    product.is_active = False
    db.session.commit()
    current_app.logger.info(f"Product {product.id} deactivated")
    return jsonify({'success': True, 'message': 'Product deactivated'})
