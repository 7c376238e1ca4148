"""
app/connectors/catalog.py

Static per-integration catalog: base URL, auth defaults, connection-test
endpoint, pagination strategy and the list of endpoints to extract.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from app.config import SyncSettings
from app.connectors.pagination import (
    CursorPagination,
    EndpointOptions,
    FlaggedCursorPagination,
    LinkHeaderPagination,
    NextUrlPagination,
    OffsetPagination,
    PaginationStrategy,
    RateLimitRecoveringCursorPagination,
    STRATEGY_CURSOR,
    STRATEGY_CURSOR_RATE_LIMITED,
    STRATEGY_FLAGGED_CURSOR,
    STRATEGY_LINK_HEADER,
    STRATEGY_NEXT_URL,
    STRATEGY_OFFSET,
)
from app.connectors.templates import render_template


class UnsupportedIntegrationError(ValueError):
    """
    Raised when a source names an integration type the catalog does not know.
    """


@dataclass(frozen=True)
class EndpointDescriptor:
    name: str
    url: str
    options: EndpointOptions = field(default_factory=EndpointOptions)


@dataclass(frozen=True)
class EnrichmentSpec:
    """
    Secondary fetch issued once per record of `parent_endpoint`.

    `name_template` and `url_template` may reference any field of the parent
    record as well as the source's template values, e.g. ``list_{id}_members``.
    """

    parent_endpoint: str
    name_template: str
    url_template: str
    options: EndpointOptions = field(default_factory=EndpointOptions)
    label_field: str | None = "name"


StrategyFactory = Callable[[SyncSettings], PaginationStrategy]


@dataclass(frozen=True)
class IntegrationProfile:
    integration_type: str
    display_name: str
    base_url: str
    test_endpoint: str
    strategy_factory: StrategyFactory
    endpoints: tuple[EndpointDescriptor, ...] = ()
    enrichments: tuple[EnrichmentSpec, ...] = ()
    auth_defaults: Mapping[str, Any] = field(default_factory=dict)
    account_info_fields: Mapping[str, str] = field(default_factory=dict)
    account_name_fields: tuple[str, ...] = ()
    # Optional second request for account details when the test endpoint lacks them.
    account_info_endpoint: str | None = None
    template_defaults: Mapping[str, Any] = field(default_factory=dict)
    page_delay_seconds: float = 0.1
    credential_label: str = "API key"

    def build_strategy(self, settings: SyncSettings) -> PaginationStrategy:
        return self.strategy_factory(settings)


def _offset(settings: SyncSettings) -> PaginationStrategy:
    return OffsetPagination()


def _offset_with_cooldown(settings: SyncSettings) -> PaginationStrategy:
    return OffsetPagination(
        rate_limit_cooldown_seconds=settings.rate_limit_cooldown_seconds,
        max_rate_limit_retries=settings.max_rate_limit_retries,
    )


def _cursor(settings: SyncSettings) -> PaginationStrategy:
    return CursorPagination()


def _cursor_rate_limited(settings: SyncSettings) -> PaginationStrategy:
    return RateLimitRecoveringCursorPagination(
        rate_limit_cooldown_seconds=settings.rate_limit_cooldown_seconds,
        max_rate_limit_retries=settings.max_rate_limit_retries,
    )


def _flagged_cursor(settings: SyncSettings) -> PaginationStrategy:
    return FlaggedCursorPagination()


def _next_page(settings: SyncSettings) -> PaginationStrategy:
    return NextUrlPagination(next_url_field="next_page")


def _hubspot_next_link(settings: SyncSettings) -> PaginationStrategy:
    return NextUrlPagination(next_url_field="paging.next.link")


def _link_header(settings: SyncSettings) -> PaginationStrategy:
    return LinkHeaderPagination()


STRATEGY_FACTORIES: dict[str, StrategyFactory] = {
    STRATEGY_OFFSET: _offset,
    STRATEGY_CURSOR: _cursor,
    STRATEGY_CURSOR_RATE_LIMITED: _cursor_rate_limited,
    STRATEGY_FLAGGED_CURSOR: _flagged_cursor,
    STRATEGY_NEXT_URL: _next_page,
    STRATEGY_LINK_HEADER: _link_header,
}


def _endpoints(
    names_and_keys: list[tuple[str, str, str]],
    **option_kwargs: Any,
) -> tuple[EndpointDescriptor, ...]:
    return tuple(
        EndpointDescriptor(
            name=name,
            url=url,
            options=EndpointOptions(entity_key=entity_key, **option_kwargs),
        )
        for name, url, entity_key in names_and_keys
    )


_KEAP_OPTIONAL_PROPERTIES = {"optional_properties": "lead_source_id,custom_fields,job_title"}

KEAP = IntegrationProfile(
    integration_type="keap",
    display_name="Keap",
    base_url="https://api.infusionsoft.com/crm/rest/v1",
    test_endpoint="{base_url}/contacts?limit=1",
    strategy_factory=_offset_with_cooldown,
    page_delay_seconds=2.0,
    auth_defaults={"type": "api_key", "authorization_type": "bearer", "credential_field": "auth_token"},
    credential_label="Keap access token",
    account_info_endpoint="{base_url}/users?limit=1",
    account_info_fields={
        "user_id": "users.0.id",
        "email": "users.0.email_address",
        "first_name": "users.0.given_name",
        "last_name": "users.0.family_name",
    },
    account_name_fields=("users.0.email_address",),
    endpoints=(
        EndpointDescriptor(
            name="contacts",
            url="{base_url}/contacts",
            options=EndpointOptions(entity_key="contacts", limit=1000, extra_params=_KEAP_OPTIONAL_PROPERTIES),
        ),
        *_endpoints(
            [
                ("companies", "{base_url}/companies", "companies"),
                ("opportunities", "{base_url}/opportunities", "opportunities"),
                ("orders", "{base_url}/orders", "orders"),
                ("products", "{base_url}/products", "products"),
                ("tags", "{base_url}/tags", "tags"),
                ("tasks", "{base_url}/tasks", "tasks"),
                ("notes", "{base_url}/notes", "notes"),
                ("emails", "{base_url}/emails", "emails"),
                ("transactions", "{base_url}/transactions", "transactions"),
            ],
            limit=1000,
        ),
    ),
)

STRIPE = IntegrationProfile(
    integration_type="stripe",
    display_name="Stripe",
    base_url="https://api.stripe.com/v1",
    test_endpoint="{base_url}/account",
    strategy_factory=_flagged_cursor,
    page_delay_seconds=0.05,
    auth_defaults={"type": "api_key", "authorization_type": "bearer"},
    credential_label="Stripe secret key",
    account_info_fields={
        "id": "id",
        "name": "business_profile.name",
        "email": "email",
        "country": "country",
        "currency": "default_currency",
    },
    account_name_fields=("business_profile.name", "email", "id"),
    endpoints=_endpoints(
        [
            (name, "{base_url}/" + name, "data")
            for name in (
                "customers",
                "charges",
                "invoices",
                "subscriptions",
                "products",
                "prices",
                "payment_intents",
                "refunds",
                "payouts",
                "events",
                "disputes",
                "transfers",
            )
        ],
        limit=100,
    ),
)

_GHL_LOCATION = {"locationId": "{location_id}"}

GOHIGHLEVEL = IntegrationProfile(
    integration_type="gohighlevel",
    display_name="GoHighLevel",
    base_url="https://services.leadconnectorhq.com",
    test_endpoint="{base_url}/locations/{location_id}",
    strategy_factory=_cursor_rate_limited,
    page_delay_seconds=0.2,
    auth_defaults={"type": "api_key", "authorization_type": "bearer"},
    credential_label="GoHighLevel API key",
    account_info_fields={
        "location_id": "id",
        "location_name": "name",
        "address": "address",
        "phone": "phone",
        "website": "website",
        "timezone": "timezone",
    },
    account_name_fields=("name", "businessName"),
    endpoints=(
        EndpointDescriptor(
            name="contacts",
            url="{base_url}/contacts/",
            options=EndpointOptions(entity_key="contacts", cursor_param="startAfterId", extra_params=_GHL_LOCATION),
        ),
        EndpointDescriptor(
            name="opportunities",
            url="{base_url}/opportunities/search",
            options=EndpointOptions(
                entity_key="opportunities",
                cursor_param="startAfterId",
                extra_params={"location_id": "{location_id}"},
            ),
        ),
        *(
            EndpointDescriptor(
                name=name,
                url=url,
                options=EndpointOptions(entity_key=entity_key, cursor_param="startAfterId", extra_params=_GHL_LOCATION),
            )
            for name, url, entity_key in (
                ("calendars", "{base_url}/calendars/", "calendars"),
                ("appointments", "{base_url}/calendars/events", "events"),
                ("campaigns", "{base_url}/campaigns/", "campaigns"),
                ("forms", "{base_url}/forms/", "forms"),
                ("surveys", "{base_url}/surveys/", "surveys"),
                ("workflows", "{base_url}/workflows/", "workflows"),
                ("conversations", "{base_url}/conversations/search", "conversations"),
            )
        ),
    ),
)

ACTIVECAMPAIGN = IntegrationProfile(
    integration_type="activecampaign",
    display_name="ActiveCampaign",
    base_url="{api_url}/api/3",
    test_endpoint="{base_url}/users?limit=1",
    strategy_factory=_offset,
    page_delay_seconds=0.2,
    auth_defaults={"type": "api_key", "header_name": "Api-Token"},
    credential_label="ActiveCampaign API key",
    account_info_fields={
        "owner_email": "users.0.email",
        "owner_first_name": "users.0.firstName",
        "owner_last_name": "users.0.lastName",
    },
    account_name_fields=("users.0.email",),
    endpoints=_endpoints(
        [
            ("contacts", "{base_url}/contacts", "contacts"),
            ("lists", "{base_url}/lists", "lists"),
            ("campaigns", "{base_url}/campaigns", "campaigns"),
            ("automations", "{base_url}/automations", "automations"),
            ("deals", "{base_url}/deals", "deals"),
            ("accounts", "{base_url}/accounts", "accounts"),
            ("tags", "{base_url}/tags", "tags"),
            ("custom_fields", "{base_url}/fields", "fields"),
            ("messages", "{base_url}/messages", "messages"),
            ("forms", "{base_url}/forms", "forms"),
        ],
        limit=100,
    ),
)

MAILCHIMP = IntegrationProfile(
    integration_type="mailchimp",
    display_name="Mailchimp",
    base_url="https://{server_prefix}.api.mailchimp.com/3.0",
    test_endpoint="{base_url}/",
    strategy_factory=_offset,
    page_delay_seconds=0.1,
    auth_defaults={"type": "api_key", "authorization_type": "basic"},
    credential_label="Mailchimp API key",
    account_info_fields={
        "id": "account_id",
        "name": "account_name",
        "email": "email",
        "datacenter": "dc",
        "industry": "industry_stats.type",
    },
    account_name_fields=("account_name", "email"),
    endpoints=_endpoints(
        [
            ("lists", "{base_url}/lists", "lists"),
            ("campaigns", "{base_url}/campaigns", "campaigns"),
            ("reports", "{base_url}/reports", "reports"),
            ("automations", "{base_url}/automations", "automations"),
            ("templates", "{base_url}/templates", "templates"),
        ],
        limit_param="count",
        limit=100,
    ),
    enrichments=(
        EnrichmentSpec(
            parent_endpoint="lists",
            name_template="list_{id}_members",
            url_template="{base_url}/lists/{id}/members",
            options=EndpointOptions(entity_key="members", limit_param="count", limit=100, max_pages=5),
        ),
    ),
)

ZENDESK = IntegrationProfile(
    integration_type="zendesk",
    display_name="Zendesk",
    base_url="https://{subdomain}.zendesk.com/api/v2",
    test_endpoint="{base_url}/account/settings.json",
    strategy_factory=_next_page,
    page_delay_seconds=0.1,
    auth_defaults={"type": "api_key", "authorization_type": "bearer", "credential_field": "api_token"},
    credential_label="Zendesk API token",
    account_info_fields={
        "name": "settings.account_display_name",
        "url": "settings.url",
        "locale": "settings.locale",
        "plan": "settings.plan_name",
    },
    account_name_fields=("settings.account_display_name", "subdomain"),
    endpoints=_endpoints(
        [
            (name, "{base_url}/" + name + ".json", name)
            for name in (
                "tickets",
                "users",
                "organizations",
                "groups",
                "ticket_fields",
                "satisfaction_ratings",
                "macros",
                "views",
            )
        ],
        limit_param="per_page",
        limit=100,
    ),
)

HUBSPOT = IntegrationProfile(
    integration_type="hubspot",
    display_name="HubSpot",
    base_url="https://api.hubapi.com",
    test_endpoint="{base_url}/account-info/v3/details",
    strategy_factory=_hubspot_next_link,
    page_delay_seconds=0.1,
    auth_defaults={"type": "oauth2"},
    credential_label="HubSpot access token",
    account_info_fields={
        "portal_id": "portalId",
        "time_zone": "timeZone",
        "currency": "companyCurrency",
        "utc_offset": "utcOffset",
    },
    account_name_fields=("portalId",),
    endpoints=_endpoints(
        [
            (name, "{base_url}/crm/v3/objects/" + name, "results")
            for name in ("contacts", "companies", "deals", "tickets", "products", "line_items")
        ],
        limit=100,
    ),
)

SHOPIFY_API_VERSION = "2024-01"

_SHOPIFY_FIELDS = {
    "products": "id,title,handle,vendor,product_type,created_at,updated_at,published_at,tags,status,variants,images,options",
    "orders": (
        "id,email,created_at,updated_at,number,note,token,gateway,total_price,subtotal_price,currency,"
        "financial_status,fulfillment_status,customer,line_items,shipping_address,billing_address,shipping_lines"
    ),
    "customers": (
        "id,email,first_name,last_name,phone,created_at,updated_at,state,total_spent,orders_count,tags,"
        "currency,addresses,default_address"
    ),
}

SHOPIFY = IntegrationProfile(
    integration_type="shopify",
    display_name="Shopify",
    base_url="https://{shop}.myshopify.com/admin/api/{api_version}",
    test_endpoint="{base_url}/shop.json",
    strategy_factory=_link_header,
    page_delay_seconds=0.5,
    auth_defaults={"type": "api_key", "header_name": "X-Shopify-Access-Token", "credential_field": "access_token"},
    credential_label="Shopify Admin API access token",
    template_defaults={"api_version": SHOPIFY_API_VERSION},
    account_info_fields={
        "name": "shop.name",
        "email": "shop.email",
        "domain": "shop.domain",
        "plan": "shop.plan_name",
        "currency": "shop.currency",
        "timezone": "shop.timezone",
    },
    account_name_fields=("shop.name", "shop"),
    endpoints=(
        EndpointDescriptor(
            name="products",
            url="{base_url}/products.json",
            options=EndpointOptions(entity_key="products", limit=250, extra_params={"fields": _SHOPIFY_FIELDS["products"]}),
        ),
        EndpointDescriptor(
            name="orders",
            url="{base_url}/orders.json",
            options=EndpointOptions(
                entity_key="orders",
                limit=250,
                extra_params={"status": "any", "fields": _SHOPIFY_FIELDS["orders"]},
            ),
        ),
        EndpointDescriptor(
            name="customers",
            url="{base_url}/customers.json",
            options=EndpointOptions(entity_key="customers", limit=250, extra_params={"fields": _SHOPIFY_FIELDS["customers"]}),
        ),
        *_endpoints(
            [
                ("inventory_items", "{base_url}/inventory_items.json", "inventory_items"),
                ("smart_collections", "{base_url}/smart_collections.json", "smart_collections"),
                ("custom_collections", "{base_url}/custom_collections.json", "custom_collections"),
            ],
            limit=250,
        ),
    ),
)

CUSTOM = IntegrationProfile(
    integration_type="custom",
    display_name="Custom API",
    base_url="{base_url}",
    test_endpoint="{base_url}",
    strategy_factory=_offset,
    page_delay_seconds=0.1,
    auth_defaults={"type": "api_key"},
)

_PROFILES: dict[str, IntegrationProfile] = {
    profile.integration_type: profile
    for profile in (KEAP, STRIPE, GOHIGHLEVEL, ACTIVECAMPAIGN, MAILCHIMP, ZENDESK, HUBSPOT, SHOPIFY, CUSTOM)
}


def supported_integrations() -> list[str]:
    return sorted(_PROFILES)


def get_integration_profile(integration_type: str) -> IntegrationProfile:
    key = (integration_type or "").strip().lower()
    profile = _PROFILES.get(key)
    if profile is None:
        raise UnsupportedIntegrationError(
            f"Unsupported integration type '{integration_type}'. Allowed values: {supported_integrations()}."
        )
    return profile


def render_options(options: EndpointOptions, values: Mapping[str, Any]) -> EndpointOptions:
    if not options.extra_params:
        return options
    rendered = {
        key: render_template(value, values) if isinstance(value, str) else value
        for key, value in options.extra_params.items()
    }
    return EndpointOptions(
        entity_key=options.entity_key,
        limit_param=options.limit_param,
        offset_param=options.offset_param,
        cursor_param=options.cursor_param,
        limit=options.limit,
        extra_params=rendered,
        max_pages=options.max_pages,
    )


def template_values(
    profile: IntegrationProfile,
    *,
    config: Mapping[str, Any] | None,
    base_url: str | None,
) -> dict[str, Any]:
    """
    Values available to URL templates: profile defaults, then the source config,
    plus a rendered ``base_url``.
    """

    values: dict[str, Any] = dict(profile.template_defaults)
    values.update(
        {key: value for key, value in (config or {}).items() if not isinstance(value, (dict, list)) and value is not None}
    )
    values["base_url"] = render_template(base_url or profile.base_url, values).rstrip("/")
    return values


def custom_endpoints(config: Mapping[str, Any] | None) -> tuple[EndpointDescriptor, ...]:
    """
    Endpoint descriptors declared inline on a custom source's configuration.
    """

    raw_endpoints = (config or {}).get("endpoints") or []
    descriptors: list[EndpointDescriptor] = []
    for item in raw_endpoints:
        if not isinstance(item, Mapping) or not item.get("name") or not item.get("url"):
            raise ValueError("Each custom endpoint needs a 'name' and a 'url'.")
        descriptors.append(
            EndpointDescriptor(
                name=str(item["name"]),
                url=str(item["url"]),
                options=EndpointOptions.from_mapping(item.get("options")),
            )
        )
    return tuple(descriptors)


def resolve_strategy(
    profile: IntegrationProfile,
    settings: SyncSettings,
    config: Mapping[str, Any] | None = None,
) -> PaginationStrategy:
    """
    Return the profile's strategy, honoring a ``pagination`` override on custom sources.
    """

    override = (config or {}).get("pagination") if profile.integration_type == CUSTOM.integration_type else None
    if override:
        factory = STRATEGY_FACTORIES.get(str(override))
        if factory is None:
            raise ValueError(
                f"Unknown pagination strategy '{override}'. Allowed values: {sorted(STRATEGY_FACTORIES)}."
            )
        return factory(settings)
    return profile.build_strategy(settings)
