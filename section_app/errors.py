from __future__ import annotations


class SectionAppError(RuntimeError):
    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class UnknownSectionError(SectionAppError):
    status_code = 404

    def __init__(self, slug: str) -> None:
        super().__init__(f"Section not found in catalog: {slug}")
        self.slug = slug


class NoLiveThemeError(SectionAppError):
    status_code = 409

    def __init__(self, shop_domain: str) -> None:
        super().__init__(f"No live (MAIN role) theme found for shop {shop_domain}")
        self.shop_domain = shop_domain


class AlreadyInstalledError(SectionAppError):
    status_code = 409

    def __init__(self, slug: str, *, asset_key: str | None = None) -> None:
        detail = f" ({asset_key} already exists in the live theme)" if asset_key else ""
        super().__init__(f"Section {slug} is already installed{detail}")
        self.slug = slug
        self.asset_key = asset_key


class GatewayError(SectionAppError):
    """A theme-file call failed for a reason other than the file being absent."""

    status_code = 502

    def __init__(self, message: str, *, remote_status_code: int | None = None) -> None:
        super().__init__(message)
        self.remote_status_code = remote_status_code
