"""
Catalog: category tree, suppliers, products, images and attributes
"""

from decimal import Decimal
from typing import Dict, List, Optional

from storefront.core.exceptions import CategoryCycleError, NotFoundError, ValidationError
from storefront.core.logger import logger
from storefront.core.utils import slugify, to_money
from storefront.database.models import (
    Category, Product, ProductAttribute, ProductImage, Supplier, from_row
)

_PRODUCT_MONEY_FIELDS = ('price', 'retail_price', 'cost_price')
_PRODUCT_UPDATABLE = {
    'sku', 'name', 'short_description', 'description', 'price', 'retail_price',
    'cost_price', 'weight_kg', 'is_active',
}


class CatalogService:
    """Product catalog management"""

    def __init__(self, db):
        self.db = db

    # Categories
    def create_category(self, name: str, slug: Optional[str] = None,
                        parent_id: Optional[int] = None,
                        description: Optional[str] = None) -> Category:
        if not name:
            raise ValidationError("Category name is required")
        if parent_id is not None:
            self.get_category(parent_id)
        category_id = self.db.execute_query('''
            INSERT INTO categories (name, slug, parent_id, description)
            VALUES (?, ?, ?, ?)
        ''', (name, slugify(slug or name), parent_id, description))
        return self.get_category(category_id)

    def get_category(self, category_id: int) -> Category:
        row = self.db.fetch_one('SELECT * FROM categories WHERE category_id = ?', (category_id,))
        if not row:
            raise NotFoundError(f"Category {category_id} not found")
        return from_row(Category, row)

    def get_category_by_slug(self, slug: str) -> Category:
        row = self.db.fetch_one('SELECT * FROM categories WHERE slug = ?', (slug,))
        if not row:
            raise NotFoundError(f"Category {slug!r} not found")
        return from_row(Category, row)

    def get_children(self, category_id: Optional[int]) -> List[Category]:
        """Direct children; None lists the root categories"""
        if category_id is None:
            rows = self.db.execute_query(
                'SELECT * FROM categories WHERE parent_id IS NULL ORDER BY name')
        else:
            rows = self.db.execute_query(
                'SELECT * FROM categories WHERE parent_id = ? ORDER BY name', (category_id,))
        return [from_row(Category, row) for row in rows]

    def get_ancestors(self, category_id: int) -> List[Category]:
        """Ancestors ordered from the direct parent up to the root"""
        ancestors = []
        seen = {category_id}
        parent_id = self.get_category(category_id).parent_id
        while parent_id is not None:
            if parent_id in seen:
                # Data written outside this service can still loop
                raise CategoryCycleError(f"Category {category_id} has a cyclic ancestry")
            seen.add(parent_id)
            parent = self.get_category(parent_id)
            ancestors.append(parent)
            parent_id = parent.parent_id
        return ancestors

    def get_descendants(self, category_id: int) -> List[Category]:
        rows = self.db.execute_query('''
            WITH RECURSIVE subtree(category_id) AS (
                SELECT category_id FROM categories WHERE parent_id = ?
                UNION
                SELECT c.category_id FROM categories c
                JOIN subtree s ON c.parent_id = s.category_id
            )
            SELECT c.* FROM categories c
            JOIN subtree s ON c.category_id = s.category_id
            ORDER BY c.category_id
        ''', (category_id,))
        return [from_row(Category, row) for row in rows]

    def set_parent(self, category_id: int, parent_id: Optional[int]) -> Category:
        """Move a category under a new parent, or to the root with None

        The existence and cycle checks run under the same write lock as the
        update, so two concurrent moves cannot close a loop between them.
        """
        with self.db.transaction() as conn:
            ids = [category_id] if parent_id is None else [category_id, parent_id]
            for wanted in ids:
                if not self.db.execute(conn, 'SELECT 1 FROM categories WHERE category_id = ?',
                                       (wanted,)).fetchone():
                    raise NotFoundError(f"Category {wanted} not found")
            if parent_id is not None:
                if parent_id == category_id:
                    raise CategoryCycleError("A category cannot be its own parent")
                descendant = self.db.execute(conn, '''
                    WITH RECURSIVE subtree(category_id) AS (
                        SELECT category_id FROM categories WHERE parent_id = ?
                        UNION
                        SELECT c.category_id FROM categories c
                        JOIN subtree s ON c.parent_id = s.category_id
                    )
                    SELECT 1 FROM subtree WHERE category_id = ?
                ''', (category_id, parent_id)).fetchone()
                if descendant:
                    raise CategoryCycleError(
                        f"Category {parent_id} is a descendant of {category_id}")
            self.db.execute(conn, 'UPDATE categories SET parent_id = ? WHERE category_id = ?',
                            (parent_id, category_id))
        logger.info(f"Category {category_id} moved under {parent_id}")
        return self.get_category(category_id)

    def category_tree(self, active_only: bool = False) -> List[Category]:
        """Root categories with nested children"""
        query = 'SELECT * FROM categories'
        if active_only:
            query += ' WHERE is_active = 1'
        query += ' ORDER BY name'
        nodes: Dict[int, Category] = {
            row['category_id']: from_row(Category, row) for row in self.db.execute_query(query)
        }
        roots = []
        for node in nodes.values():
            parent = nodes.get(node.parent_id) if node.parent_id is not None else None
            if parent is None:
                roots.append(node)
            else:
                parent.children.append(node)
        return roots

    def delete_category(self, category_id: int):
        """Delete a category; its children become roots"""
        if not self.db.execute_update('DELETE FROM categories WHERE category_id = ?', (category_id,)):
            raise NotFoundError(f"Category {category_id} not found")
        logger.info(f"Category {category_id} deleted")

    # Suppliers
    def create_supplier(self, name: str, contact_email: Optional[str] = None,
                        contact_phone: Optional[str] = None,
                        address: Optional[str] = None) -> Supplier:
        supplier_id = self.db.execute_query('''
            INSERT INTO suppliers (name, contact_email, contact_phone, address)
            VALUES (?, ?, ?, ?)
        ''', (name, contact_email, contact_phone, address))
        return self.get_supplier(supplier_id)

    def get_supplier(self, supplier_id: int) -> Supplier:
        row = self.db.fetch_one('SELECT * FROM suppliers WHERE supplier_id = ?', (supplier_id,))
        if not row:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        return from_row(Supplier, row)

    def delete_supplier(self, supplier_id: int):
        """Delete a supplier; its inventory rows keep existing without one"""
        if not self.db.execute_update('DELETE FROM suppliers WHERE supplier_id = ?', (supplier_id,)):
            raise NotFoundError(f"Supplier {supplier_id} not found")

    # Products
    def create_product(self, sku: str, name: str, price, cost_price=None,
                       retail_price=None, short_description: Optional[str] = None,
                       description: Optional[str] = None, weight_kg=None,
                       category_ids: Optional[List[int]] = None) -> Product:
        if not sku or not name:
            raise ValidationError("sku and name are required")
        product_id = self.db.execute_query('''
            INSERT INTO products (sku, name, short_description, description, price,
                                  retail_price, cost_price, weight_kg)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''', (sku, name, short_description, description, to_money(price),
              to_money(retail_price) if retail_price is not None else None,
              to_money(cost_price) if cost_price is not None else None,
              Decimal(str(weight_kg)).quantize(Decimal('0.001')) if weight_kg is not None else None))
        for category_id in category_ids or []:
            self.add_product_to_category(product_id, category_id)
        logger.info(f"Product {sku} created")
        return self.get_product(product_id)

    def get_product(self, product_id: int) -> Product:
        row = self.db.fetch_one('SELECT * FROM products WHERE product_id = ?', (product_id,))
        if not row:
            raise NotFoundError(f"Product {product_id} not found")
        return from_row(Product, row)

    def get_product_by_sku(self, sku: str) -> Product:
        row = self.db.fetch_one('SELECT * FROM products WHERE sku = ?', (sku,))
        if not row:
            raise NotFoundError(f"Product {sku!r} not found")
        return from_row(Product, row)

    def update_product(self, product_id: int, **changes) -> Product:
        """Edit catalog data; order history keeps its own snapshot"""
        unknown = set(changes) - _PRODUCT_UPDATABLE
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not changes:
            return self.get_product(product_id)
        for money_field in _PRODUCT_MONEY_FIELDS:
            if changes.get(money_field) is not None:
                changes[money_field] = to_money(changes[money_field])
        assignments = ', '.join(f"{column} = ?" for column in changes)
        updated = self.db.execute_update(
            f"UPDATE products SET {assignments} WHERE product_id = ?",
            list(changes.values()) + [product_id]
        )
        if not updated:
            raise NotFoundError(f"Product {product_id} not found")
        return self.get_product(product_id)

    def search_products(self, query: str, limit: int = 20) -> List[Product]:
        """Search active products by name or SKU"""
        pattern = f"%{query}%"
        rows = self.db.execute_query('''
            SELECT * FROM products
            WHERE (name LIKE ? OR sku LIKE ?) AND is_active = 1
            ORDER BY name
            LIMIT ?
        ''', (pattern, pattern, limit))
        return [from_row(Product, row) for row in rows]

    def list_products_in_category(self, category_id: int,
                                  include_subcategories: bool = False) -> List[Product]:
        category_ids = [category_id]
        if include_subcategories:
            category_ids += [c.category_id for c in self.get_descendants(category_id)]
        placeholders = ', '.join('?' for _ in category_ids)
        rows = self.db.execute_query(f'''
            SELECT DISTINCT p.* FROM products p
            JOIN product_categories pc ON pc.product_id = p.product_id
            WHERE pc.category_id IN ({placeholders}) AND p.is_active = 1
            ORDER BY p.name
        ''', category_ids)
        return [from_row(Product, row) for row in rows]

    def delete_product(self, product_id: int):
        """Delete a product; blocked while order history references it"""
        if not self.db.execute_update('DELETE FROM products WHERE product_id = ?', (product_id,)):
            raise NotFoundError(f"Product {product_id} not found")
        logger.info(f"Product {product_id} deleted")

    def add_product_to_category(self, product_id: int, category_id: int):
        self.db.execute_query('''
            INSERT OR IGNORE INTO product_categories (product_id, category_id) VALUES (?, ?)
        ''', (product_id, category_id))

    def remove_product_from_category(self, product_id: int, category_id: int) -> bool:
        return bool(self.db.execute_update(
            'DELETE FROM product_categories WHERE product_id = ? AND category_id = ?',
            (product_id, category_id)))

    def product_categories(self, product_id: int) -> List[Category]:
        rows = self.db.execute_query('''
            SELECT c.* FROM categories c
            JOIN product_categories pc ON pc.category_id = c.category_id
            WHERE pc.product_id = ?
            ORDER BY c.name
        ''', (product_id,))
        return [from_row(Category, row) for row in rows]

    # Images and attributes
    def add_image(self, product_id: int, url: str, alt_text: Optional[str] = None,
                  position: Optional[int] = None, is_primary: bool = False) -> ProductImage:
        """Attach an image; a new primary image demotes the previous one"""
        with self.db.transaction() as conn:
            if position is None:
                position = self.db.execute(conn, '''
                    SELECT COALESCE(MAX(position) + 1, 0) FROM product_images WHERE product_id = ?
                ''', (product_id,)).fetchone()[0]
            if is_primary:
                self.db.execute(conn, '''
                    UPDATE product_images SET is_primary = 0 WHERE product_id = ?
                ''', (product_id,))
            image_id = self.db.execute(conn, '''
                INSERT INTO product_images (product_id, url, alt_text, position, is_primary)
                VALUES (?, ?, ?, ?, ?)
            ''', (product_id, url, alt_text, position, is_primary)).lastrowid
        row = self.db.fetch_one('SELECT * FROM product_images WHERE image_id = ?', (image_id,))
        return from_row(ProductImage, row)

    def list_images(self, product_id: int) -> List[ProductImage]:
        rows = self.db.execute_query('''
            SELECT * FROM product_images WHERE product_id = ? ORDER BY position, image_id
        ''', (product_id,))
        return [from_row(ProductImage, row) for row in rows]

    def set_attribute(self, product_id: int, key: str, value: str) -> ProductAttribute:
        """Set a key/value attribute, replacing an existing value for the key"""
        with self.db.transaction() as conn:
            existing = self.db.execute(conn, '''
                SELECT attr_id FROM product_attributes WHERE product_id = ? AND attr_key = ?
            ''', (product_id, key)).fetchone()
            if existing:
                attr_id = existing['attr_id']
                self.db.execute(conn, 'UPDATE product_attributes SET attr_value = ? WHERE attr_id = ?',
                                (value, attr_id))
            else:
                attr_id = self.db.execute(conn, '''
                    INSERT INTO product_attributes (product_id, attr_key, attr_value) VALUES (?, ?, ?)
                ''', (product_id, key, value)).lastrowid
        return ProductAttribute(attr_id=attr_id, product_id=product_id, attr_key=key, attr_value=value)

    def get_attributes(self, product_id: int) -> Dict[str, str]:
        rows = self.db.execute_query('''
            SELECT attr_key, attr_value FROM product_attributes WHERE product_id = ? ORDER BY attr_key
        ''', (product_id,))
        return {row['attr_key']: row['attr_value'] for row in rows}
