from __future__ import annotations

MEMBER_TYPES = ("student", "teacher", "staff", "foreigner")
GENDERS = ("male", "female", "other")


class Member:
    """A registered borrower."""

    def __init__(self, name: str, member_type: str, gender: str, code: str | None = None,
                 id: str | None = None, phone: str | None = None, email: str | None = None,
                 active: bool = True, created_at: str | None = None) -> None:
        self.id = id
        self.code = code
        self.name = (name or "").strip()
        self.phone = phone.strip() if phone else None
        self.email = email.strip().lower() if email else None
        self.member_type = member_type
        self.gender = gender
        self.active = active
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} ({self.code})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "member_type": self.member_type,
            "gender": self.gender,
            "active": self.active,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Member":
        return Member(
            id=data.get("id"),
            code=data.get("code"),
            name=data["name"],
            phone=data.get("phone"),
            email=data.get("email"),
            member_type=data["member_type"],
            gender=data["gender"],
            active=bool(data.get("active", True)),
            created_at=data.get("created_at"),
        )
