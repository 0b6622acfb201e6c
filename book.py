from __future__ import annotations


class Book:
    """Represents a single catalog entry and its available copies."""

    def __init__(self, author: str, title: str, location: str | None = None, amount: int = 0,
                 id: int | None = None) -> None:
        self.id = id
        self.author = author.strip()
        self.title = title.strip()
        self.location = location
        self.amount = amount

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (shelf: {self.location}, available: {self.amount})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author": self.author,
            "title": self.title,
            "location": self.location,
            "amount": self.amount,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            author=data["author"],
            title=data["title"],
            location=data.get("location"),
            amount=int(data.get("amount") or 0),
        )
