from __future__ import annotations


class Reader:
    """A registered library reader identified by a unique card number."""

    def __init__(self, name: str, card_number: str, phone: str | None = None, email: str | None = None,
                 id: int | None = None, created_at: str | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.card_number = card_number.strip()
        self.phone = phone
        self.email = email
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} (card {self.card_number})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "card_number": self.card_number,
            "phone": self.phone,
            "email": self.email,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Reader":
        return Reader(
            id=data.get("id"),
            name=data["name"],
            card_number=data["card_number"],
            phone=data.get("phone"),
            email=data.get("email"),
            created_at=data.get("created_at"),
        )
