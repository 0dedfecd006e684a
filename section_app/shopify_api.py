from __future__ import annotations

import asyncio
from typing import Any

import httpx

from section_app.config import settings


class ShopifyApiError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502, error_code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


def _first_user_error_code(user_errors: list[dict[str, Any]]) -> str | None:
    for error in user_errors:
        code = error.get("code")
        if isinstance(code, str) and code:
            return code
    return None


def _user_error_messages(user_errors: list[dict[str, Any]]) -> str:
    return "; ".join(str(error.get("message")) for error in user_errors)


class ShopifyApiClient:
    def __init__(self) -> None:
        self._timeout = settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS

    async def exchange_code_for_access_token(self, *, shop_domain: str, code: str) -> tuple[str, str]:
        url = f"https://{shop_domain}/admin/oauth/access_token"
        payload = {
            "client_id": settings.SHOPIFY_APP_API_KEY,
            "client_secret": settings.SHOPIFY_APP_API_SECRET,
            "code": code,
        }
        response = await self._post_json(url=url, payload=payload)
        access_token = response.get("access_token")
        scopes = response.get("scope")
        if not isinstance(access_token, str) or not access_token:
            raise ShopifyApiError(message="OAuth token exchange response is missing access_token")
        if not isinstance(scopes, str):
            raise ShopifyApiError(message="OAuth token exchange response is missing scope")
        return access_token, scopes

    async def register_webhook(
        self,
        *,
        shop_domain: str,
        access_token: str,
        topic: str,
        callback_url: str,
    ) -> str | None:
        query = """
        mutation webhookSubscriptionCreate(
            $topic: WebhookSubscriptionTopic!
            $webhookSubscription: WebhookSubscriptionInput!
        ) {
            webhookSubscriptionCreate(topic: $topic, webhookSubscription: $webhookSubscription) {
                webhookSubscription {
                    id
                }
                userErrors {
                    field
                    message
                }
            }
        }
        """
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload={
                "query": query,
                "variables": {
                    "topic": topic,
                    "webhookSubscription": {"callbackUrl": callback_url, "format": "JSON"},
                },
            },
        )
        create_data = response.get("webhookSubscriptionCreate") or {}
        user_errors = create_data.get("userErrors") or []
        if user_errors:
            # Re-installs hit "Address for this topic has already been taken"; the subscription exists.
            if all("already been taken" in str(error.get("message", "")).lower() for error in user_errors):
                return None
            raise ShopifyApiError(
                message=f"Webhook registration failed for {topic}: {_user_error_messages(user_errors)}"
            )
        webhook_id = (create_data.get("webhookSubscription") or {}).get("id")
        if not isinstance(webhook_id, str) or not webhook_id:
            raise ShopifyApiError(message=f"Webhook registration for {topic} returned no id")
        return webhook_id

    @staticmethod
    def _coerce_theme(node: Any) -> dict[str, str]:
        if not isinstance(node, dict):
            raise ShopifyApiError(message="themes response is missing theme data.")
        theme_id = node.get("id")
        theme_name = node.get("name")
        theme_role = node.get("role")
        if not isinstance(theme_id, str) or not theme_id:
            raise ShopifyApiError(message="themes response is missing theme.id.")
        if not isinstance(theme_role, str) or not theme_role:
            raise ShopifyApiError(message="themes response is missing theme.role.")
        return {
            "id": theme_id,
            "name": theme_name if isinstance(theme_name, str) else "",
            "role": theme_role,
        }

    async def list_themes(
        self,
        *,
        shop_domain: str,
        access_token: str,
        roles: list[str] | None = None,
    ) -> list[dict[str, str]]:
        query = """
        query themes($first: Int!, $roles: [ThemeRole!]) {
            themes(first: $first, roles: $roles) {
                nodes {
                    id
                    name
                    role
                }
            }
        }
        """
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload={"query": query, "variables": {"first": 50, "roles": roles}},
        )
        raw_nodes = (response.get("themes") or {}).get("nodes")
        if not isinstance(raw_nodes, list):
            raise ShopifyApiError(message="themes query response is invalid.")
        return [self._coerce_theme(node) for node in raw_nodes]

    async def get_theme_file(
        self,
        *,
        shop_domain: str,
        access_token: str,
        theme_id: str,
        filename: str,
    ) -> dict[str, Any]:
        query = """
        query themeFileByName($id: ID!, $filenames: [String!]!) {
            theme(id: $id) {
                files(first: 1, filenames: $filenames) {
                    nodes {
                        filename
                        checksumMd5
                        body {
                            __typename
                            ... on OnlineStoreThemeFileBodyText {
                                content
                            }
                        }
                    }
                    userErrors {
                        code
                        filename
                    }
                }
            }
        }
        """
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload={"query": query, "variables": {"id": theme_id, "filenames": [filename]}},
        )
        theme = response.get("theme")
        if not isinstance(theme, dict):
            raise ShopifyApiError(message=f"Theme not found for themeId={theme_id}.", status_code=404)
        files = theme.get("files")
        if not isinstance(files, dict):
            raise ShopifyApiError(message="theme files query response is invalid.")
        user_errors = files.get("userErrors") or []
        if user_errors:
            codes = ", ".join(str(error.get("code")) for error in user_errors)
            raise ShopifyApiError(
                message=f"theme files query failed for {filename}: {codes}",
                status_code=409,
                error_code=_first_user_error_code(user_errors),
            )
        nodes = files.get("nodes")
        if not isinstance(nodes, list):
            raise ShopifyApiError(message="theme files query response is missing nodes.")

        for node in nodes:
            if isinstance(node, dict) and node.get("filename") == filename:
                body = node.get("body") if isinstance(node.get("body"), dict) else {}
                content = body.get("content")
                return {
                    "filename": filename,
                    "checksumMd5": node.get("checksumMd5"),
                    "content": content if isinstance(content, str) else None,
                }
        raise ShopifyApiError(
            message=f"Theme file not found: {filename}",
            status_code=404,
            error_code="NOT_FOUND",
        )

    async def upsert_theme_files(
        self,
        *,
        shop_domain: str,
        access_token: str,
        theme_id: str,
        files: list[dict[str, str]],
    ) -> str | None:
        mutation = """
        mutation themeFilesUpsert($themeId: ID!, $files: [OnlineStoreThemeFilesUpsertFileInput!]!) {
            themeFilesUpsert(themeId: $themeId, files: $files) {
                upsertedThemeFiles {
                    filename
                }
                job {
                    id
                    done
                }
                userErrors {
                    field
                    message
                    code
                    filename
                }
            }
        }
        """
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload={
                "query": mutation,
                "variables": {
                    "themeId": theme_id,
                    "files": [
                        {"filename": item["filename"], "body": {"type": "TEXT", "value": item["content"]}}
                        for item in files
                    ],
                },
            },
        )
        upsert_data = response.get("themeFilesUpsert") or {}
        user_errors = upsert_data.get("userErrors") or []
        if user_errors:
            raise ShopifyApiError(
                message=f"themeFilesUpsert failed: {_user_error_messages(user_errors)}",
                status_code=409,
                error_code=_first_user_error_code(user_errors),
            )

        upserted = upsert_data.get("upsertedThemeFiles")
        if not isinstance(upserted, list):
            raise ShopifyApiError(message="themeFilesUpsert response is missing upsertedThemeFiles.")
        upserted_filenames = {item.get("filename") for item in upserted if isinstance(item, dict)}
        missing = sorted({item["filename"] for item in files} - upserted_filenames)
        if missing:
            raise ShopifyApiError(message=f"themeFilesUpsert did not report updated files: {', '.join(missing)}")

        job = upsert_data.get("job")
        if not isinstance(job, dict) or job.get("done") is True:
            return None
        job_id = job.get("id")
        if not isinstance(job_id, str) or not job_id:
            raise ShopifyApiError(message="themeFilesUpsert response is missing job.id.")
        return job_id

    async def wait_for_job_completion(
        self,
        *,
        shop_domain: str,
        access_token: str,
        job_id: str,
    ) -> None:
        query = """
        query themeFileJobStatus($id: ID!) {
            job(id: $id) {
                id
                done
            }
        }
        """
        for _ in range(settings.THEME_FILE_JOB_MAX_ATTEMPTS):
            response = await self._admin_graphql(
                shop_domain=shop_domain,
                access_token=access_token,
                payload={"query": query, "variables": {"id": job_id}},
            )
            job = response.get("job")
            if not isinstance(job, dict):
                raise ShopifyApiError(message=f"Job not found for id={job_id}.")
            done = job.get("done")
            if not isinstance(done, bool):
                raise ShopifyApiError(message=f"Job response is missing done state for id={job_id}.")
            if done:
                return
            await asyncio.sleep(settings.THEME_FILE_JOB_POLL_SECONDS)

        raise ShopifyApiError(
            message=f"Timed out while waiting for theme file job {job_id} to complete.",
            status_code=504,
        )

    async def delete_theme_files(
        self,
        *,
        shop_domain: str,
        access_token: str,
        theme_id: str,
        filenames: list[str],
    ) -> list[str]:
        mutation = """
        mutation themeFilesDelete($themeId: ID!, $files: [String!]!) {
            themeFilesDelete(themeId: $themeId, files: $files) {
                deletedThemeFiles {
                    filename
                }
                userErrors {
                    field
                    message
                    code
                    filename
                }
            }
        }
        """
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload={"query": mutation, "variables": {"themeId": theme_id, "files": filenames}},
        )
        delete_data = response.get("themeFilesDelete") or {}
        user_errors = delete_data.get("userErrors") or []
        if user_errors:
            error_code = _first_user_error_code(user_errors)
            raise ShopifyApiError(
                message=f"themeFilesDelete failed: {_user_error_messages(user_errors)}",
                status_code=404 if error_code == "NOT_FOUND" else 409,
                error_code=error_code,
            )
        deleted = delete_data.get("deletedThemeFiles")
        if not isinstance(deleted, list):
            raise ShopifyApiError(message="themeFilesDelete response is missing deletedThemeFiles.")
        return [
            item["filename"]
            for item in deleted
            if isinstance(item, dict) and isinstance(item.get("filename"), str)
        ]

    async def create_page(
        self,
        *,
        shop_domain: str,
        access_token: str,
        title: str,
        template_suffix: str,
        body: str = "",
    ) -> dict[str, str]:
        mutation = """
        mutation pageCreate($page: PageCreateInput!) {
            pageCreate(page: $page) {
                page {
                    id
                    title
                    handle
                }
                userErrors {
                    field
                    message
                    code
                }
            }
        }
        """
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload={
                "query": mutation,
                "variables": {
                    "page": {
                        "title": title,
                        "body": body,
                        "templateSuffix": template_suffix,
                    }
                },
            },
        )
        create_data = response.get("pageCreate") or {}
        user_errors = create_data.get("userErrors") or []
        if user_errors:
            raise ShopifyApiError(
                message=f"pageCreate failed: {_user_error_messages(user_errors)}",
                status_code=409,
                error_code=_first_user_error_code(user_errors),
            )
        page = create_data.get("page")
        if not isinstance(page, dict):
            raise ShopifyApiError(message="pageCreate response is missing page.")
        page_id = page.get("id")
        handle = page.get("handle")
        if not isinstance(page_id, str) or not page_id:
            raise ShopifyApiError(message="pageCreate response is missing page.id.")
        return {
            "id": page_id,
            "title": str(page.get("title") or title),
            "handle": handle if isinstance(handle, str) else "",
        }

    async def _admin_graphql(
        self,
        *,
        shop_domain: str,
        access_token: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        url = f"https://{shop_domain}/admin/api/{settings.SHOPIFY_ADMIN_API_VERSION}/graphql.json"
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }
        response = await self._post_json(url=url, payload=payload, headers=headers)
        data = response.get("data")
        errors = response.get("errors")
        if errors:
            error_code = None
            if isinstance(errors, list):
                for error in errors:
                    extensions = error.get("extensions") if isinstance(error, dict) else None
                    if isinstance(extensions, dict) and isinstance(extensions.get("code"), str):
                        error_code = extensions["code"]
                        break
            raise ShopifyApiError(
                message=f"Admin GraphQL errors: {errors}",
                status_code=429 if error_code == "THROTTLED" else 502,
                error_code=error_code,
            )
        if not isinstance(data, dict):
            raise ShopifyApiError(message="Admin GraphQL response is missing data")
        return data

    async def _post_json(
        self,
        *,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as exc:
            raise ShopifyApiError(message=f"Network error while calling Shopify: {exc}") from exc

        if response.status_code >= 400:
            raise ShopifyApiError(
                message=f"Shopify API call failed ({response.status_code}): {response.text}",
                status_code=429 if response.status_code == 429 else 502,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ShopifyApiError(message="Shopify API returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise ShopifyApiError(message="Shopify API response must be a JSON object")
        return body
