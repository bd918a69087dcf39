"""Reusable invoice skeletons."""
from __future__ import annotations

from typing import Optional

from ..errors import NotFoundError
from ..models import Collection
from ..schemas import Template, TemplateIn, TemplateItem
from .recovery import reconciling
from .tax import compute_totals

TEMPLATES = Collection.TEMPLATES.value


async def list_templates(ctx, owner_uid: str, force: bool = False) -> list[Template]:
    documents = await ctx.cache.load_once(TEMPLATES, owner_uid, force=force)
    return [Template.model_validate(document) for document in documents]


async def get_template(ctx, owner_uid: str, template_id: str) -> Template:
    document = await ctx.cache.get_by_id(TEMPLATES, template_id)
    if document is None or document.get("ownerUid") != owner_uid:
        raise NotFoundError(TEMPLATES, template_id)
    return Template.model_validate(document)


async def save_template(ctx, owner_uid: str, payload: TemplateIn, template_id: Optional[str] = None) -> Template:
    if template_id is not None:
        await get_template(ctx, owner_uid, template_id)
    fields = payload.model_dump(exclude={"default_items"})
    items = [TemplateItem(**item.model_dump()) for item in payload.default_items]
    compute_totals(items, payload.vat_rate, payload.irpf_rate)
    template = Template(owner_uid=owner_uid, default_items=items, **fields)
    if template_id is not None:
        template.id = template_id
    async with reconciling(ctx, TEMPLATES, owner_uid):
        saved = await ctx.cache.save(TEMPLATES, owner_uid, template.to_document())
    return Template.model_validate(saved)


async def delete_template(ctx, owner_uid: str, template_id: str) -> None:
    await get_template(ctx, owner_uid, template_id)
    async with reconciling(ctx, TEMPLATES, owner_uid):
        await ctx.cache.delete(TEMPLATES, owner_uid, template_id)
