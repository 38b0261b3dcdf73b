import pytest
from pydantic import ValidationError

from app.models.saved_template import TemplateScope, TemplateType
from app.schemas.social_inbox import SavedTemplateCreate, SavedTemplateUpdate
from app.services.exceptions import InvalidReply, TemplateNotFound
from app.services.templates import saved_templates


def _text_template(scope=TemplateScope.seller, seller_id="sellerA", text="Hello!"):
    return SavedTemplateCreate(scope=scope, seller_id=seller_id, type=TemplateType.text, text=text)


@pytest.mark.asyncio
async def test_create_global_template_drops_seller(db_session):
    template = await saved_templates.create(
        db_session, _text_template(scope=TemplateScope.global_, seller_id="sellerA")
    )

    assert template.id is not None
    assert template.scope == TemplateScope.global_
    assert template.seller_id is None


def test_template_schema_validation():
    with pytest.raises(ValidationError):
        SavedTemplateCreate(scope=TemplateScope.seller, type=TemplateType.text, text="x")
    with pytest.raises(ValidationError):
        SavedTemplateCreate(scope=TemplateScope.global_, type=TemplateType.text, text=" ")
    with pytest.raises(ValidationError):
        SavedTemplateCreate(scope=TemplateScope.global_, type=TemplateType.media, media_urls=[])
    parsed = SavedTemplateCreate.model_validate({"scope": "global", "type": "text", "text": "Hi"})
    assert parsed.scope == TemplateScope.global_


@pytest.mark.asyncio
async def test_list_returns_global_and_own_templates(db_session):
    shared = await saved_templates.create(
        db_session, _text_template(scope=TemplateScope.global_, seller_id=None)
    )
    mine = await saved_templates.create(db_session, _text_template(seller_id="sellerA"))
    await saved_templates.create(db_session, _text_template(seller_id="sellerB"))

    visible = await saved_templates.list(db_session, seller_id="sellerA")
    anonymous = await saved_templates.list(db_session)

    assert {t.id for t in visible} == {shared.id, mine.id}
    assert [t.id for t in anonymous] == [shared.id]


@pytest.mark.asyncio
async def test_list_filters_by_type(db_session):
    await saved_templates.create(db_session, _text_template(scope=TemplateScope.global_))
    media = await saved_templates.create(
        db_session,
        SavedTemplateCreate(
            scope=TemplateScope.global_,
            type=TemplateType.media,
            media_urls=["https://cdn.test/a.jpg"],
        ),
    )

    result = await saved_templates.list(db_session, template_type=TemplateType.media)

    assert [t.id for t in result] == [media.id]


@pytest.mark.asyncio
async def test_get_hides_other_sellers_template(db_session):
    template = await saved_templates.create(db_session, _text_template(seller_id="sellerA"))

    own = await saved_templates.get(db_session, template.id, seller_id="sellerA")
    assert own.id == template.id
    with pytest.raises(TemplateNotFound):
        await saved_templates.get(db_session, template.id, seller_id="sellerB")
    with pytest.raises(TemplateNotFound):
        await saved_templates.get(db_session, 99999)


@pytest.mark.asyncio
async def test_update_template(db_session):
    template = await saved_templates.create(db_session, _text_template())

    updated = await saved_templates.update(
        db_session, template.id, SavedTemplateUpdate(title="Greeting", text="Hi there")
    )

    assert updated.title == "Greeting"
    assert updated.text == "Hi there"


@pytest.mark.asyncio
async def test_update_cannot_blank_text_template(db_session):
    template = await saved_templates.create(db_session, _text_template(text="Keep me"))

    with pytest.raises(InvalidReply):
        await saved_templates.update(db_session, template.id, SavedTemplateUpdate(text=""))

    stored = await saved_templates.get(db_session, template.id)
    assert stored.text == "Keep me"


@pytest.mark.asyncio
async def test_delete_template(db_session):
    template = await saved_templates.create(db_session, _text_template())

    await saved_templates.delete(db_session, template.id, seller_id="sellerA")

    with pytest.raises(TemplateNotFound):
        await saved_templates.get(db_session, template.id)
