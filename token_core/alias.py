from typing import Optional


class AliasField:
    """
    Giá trị hiển thị có thể bị user override (issuer / label alias).

    - base: giá trị gốc từ URI
    - override: alias do user đặt, luôn là None khi trùng base
    """

    __slots__ = ("base", "override")

    def __init__(self, base: str, override: Optional[str] = None):
        self.base = base
        self.override = override
        self.clear_if_redundant()

    def effective(self) -> str:
        if self.override is not None:
            return self.override
        return self.base if self.base is not None else ""

    def set(self, value: Optional[str]) -> bool:
        """Đặt alias; trả True nếu state thay đổi (caller phải lưu token)."""
        previous = self.override
        self.override = None if value is None or value == self.base else value
        return self.override != previous

    def clear_if_redundant(self) -> bool:
        if self.override is not None and self.override == self.base:
            self.override = None
            return True
        return False

    def __repr__(self):
        return f"AliasField(base={self.base!r}, override={self.override!r})"
