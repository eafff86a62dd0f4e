"""
Product reviews
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from storefront.core.exceptions import NotFoundError, ValidationError
from storefront.core.logger import logger
from storefront.core.utils import sanitize_text
from storefront.database.models import Review, from_row


class ReviewService:

    def __init__(self, db):
        self.db = db

    def add_review(self, product_id: int, user_id: int, rating: int,
                   title: Optional[str] = None, body: Optional[str] = None) -> Review:
        """Add a review; a second review of the same product by the user is rejected"""
        if not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer from 1 to 5")
        review_id = self.db.execute_query('''
            INSERT INTO reviews (product_id, user_id, rating, title, body)
            VALUES (?, ?, ?, ?, ?)
        ''', (product_id, user_id, rating,
              sanitize_text(title, 255) if title else None,
              sanitize_text(body, 5000) if body else None))
        logger.info(f"User {user_id} rated product {product_id}: {rating}")
        return self.get_review(review_id)

    def get_review(self, review_id: int) -> Review:
        row = self.db.fetch_one('SELECT * FROM reviews WHERE review_id = ?', (review_id,))
        if not row:
            raise NotFoundError(f"Review {review_id} not found")
        return from_row(Review, row)

    def product_reviews(self, product_id: int) -> List[Review]:
        rows = self.db.execute_query('''
            SELECT * FROM reviews WHERE product_id = ? ORDER BY created_at DESC, review_id DESC
        ''', (product_id,))
        return [from_row(Review, row) for row in rows]

    def rating_summary(self, product_id: int) -> Dict[str, object]:
        """Average rating (one decimal) and review count"""
        row = self.db.fetch_one('''
            SELECT COUNT(*) AS review_count, COALESCE(SUM(rating), 0) AS rating_sum
            FROM reviews WHERE product_id = ?
        ''', (product_id,))
        count = row['review_count']
        average = (Decimal(row['rating_sum']) / count).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP) \
            if count else None
        return {'review_count': count, 'average_rating': average}

    def delete_review(self, review_id: int):
        if not self.db.execute_update('DELETE FROM reviews WHERE review_id = ?', (review_id,)):
            raise NotFoundError(f"Review {review_id} not found")
