import asyncio
from collections.abc import Callable

from iaqhub.models.schemas import ProfileCreate
from iaqhub.services.profile_repository import ProfileRepository


async def test_latest_is_none_initially(profiles: ProfileRepository) -> None:
    assert await profiles.latest() is None


async def test_save_appends_versions(
    profiles: ProfileRepository, make_profile: Callable[..., ProfileCreate]
) -> None:
    first = await profiles.save(make_profile(share=False))
    await asyncio.sleep(0.01)
    second = await profiles.save(
        make_profile(share=True, members=[{"name": "Kim", "relation": "child", "age": "7"}])
    )

    latest = await profiles.latest()
    assert latest is not None
    assert latest.id == second.id != first.id
    assert latest.preferences.share_with_external is True
    assert latest.members[0].age == 7


async def test_delete_all_removes_every_version(
    profiles: ProfileRepository, make_profile: Callable[..., ProfileCreate]
) -> None:
    await profiles.save(make_profile())
    await profiles.save(make_profile())

    assert await profiles.delete_all() == 2
    assert await profiles.latest() is None
    assert await profiles.delete_all() == 0


def test_owner_name_is_truncated() -> None:
    profile = ProfileCreate.model_validate({"owner_name": "x" * 300})
    assert len(profile.owner_name) == 128
    assert profile.preferences.share_with_external is False
    assert profile.preferences.receive_notifications is True
