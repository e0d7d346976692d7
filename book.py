from __future__ import annotations


class Book:
    """Represents a single title in the catalog together with its copy counts."""

    def __init__(self, title: str, author: str, isbn: str | None = None, category: str | None = None,
                 publisher: str | None = None, publish_date: str | None = None,
                 total_quantity: int = 1, available_quantity: int | None = None,
                 description: str | None = None, id: int | None = None, created_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        # Empty ISBNs are stored as NULL so the UNIQUE constraint ignores them
        self.isbn = isbn.strip() if isbn and isbn.strip() else None
        self.category = category
        self.publisher = publisher
        self.publish_date = publish_date
        self.total_quantity = total_quantity
        self.available_quantity = total_quantity if available_quantity is None else available_quantity
        self.description = description
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.available_quantity}/{self.total_quantity} available)"

    @property
    def on_loan(self) -> int:
        return self.total_quantity - self.available_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "category": self.category,
            "publisher": self.publisher,
            "publish_date": self.publish_date,
            "total_quantity": self.total_quantity,
            "available_quantity": self.available_quantity,
            "description": self.description,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            isbn=data.get("isbn"),
            category=data.get("category"),
            publisher=data.get("publisher"),
            publish_date=data.get("publish_date"),
            total_quantity=data.get("total_quantity", 1),
            available_quantity=data.get("available_quantity"),
            description=data.get("description"),
            created_at=data.get("created_at"),
        )
