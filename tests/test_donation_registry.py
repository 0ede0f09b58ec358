import pytest

from errors import DonationNotFound, InvalidTransition, ValidationError
from models import AVAILABLE, DELIVERED, RESERVED
from services.donations import DonationRegistry


@pytest.fixture
def registry(session):
    return DonationRegistry(session)


def test_create_then_get_returns_same_attributes(registry, session, bilbao, donor):
    created = registry.create({**bilbao, "donor_id": donor.user_id})
    session.commit()
    session.expire_all()

    fetched = registry.get(created.id)
    for key, value in bilbao.items():
        assert getattr(fetched, key) == value
    assert fetched.donor_id == donor.user_id
    assert fetched.delivery_status == AVAILABLE
    assert fetched.requester_id is None
    assert fetched.reserved_at is None
    assert fetched.delivered_at is None
    assert fetched.created_at is not None


def test_create_without_donor(registry, bilbao):
    donation = registry.create(bilbao)
    assert donation.donor_id is None
    assert donation.delivery_status == AVAILABLE


@pytest.mark.parametrize(
    "override",
    [
        {"latitude": 95},
        {"latitude": -90.5},
        {"longitude": 181},
        {"type": ""},
        {"description": "   "},
        {"condition": ""},
    ],
)
def test_create_rejects_bad_attributes(registry, bilbao, override):
    with pytest.raises(ValidationError) as excinfo:
        registry.create({**bilbao, **override})
    assert excinfo.value.errors


def test_create_rejects_missing_field(registry, bilbao):
    attributes = dict(bilbao)
    del attributes["city"]
    with pytest.raises(ValidationError):
        registry.create(attributes)


def test_get_unknown(registry):
    with pytest.raises(DonationNotFound):
        registry.get(404)


def test_reserve_sets_requester_and_timestamp(registry, bilbao, seeker):
    donation = registry.create(bilbao)

    reserved = registry.transition(donation.id, RESERVED, seeker.user_id)

    assert reserved.delivery_status == RESERVED
    assert reserved.requester_id == seeker.user_id
    assert reserved.reserved_at is not None
    assert reserved.delivered_at is None


def test_reserve_requires_requester(registry, bilbao):
    donation = registry.create(bilbao)
    with pytest.raises(ValidationError):
        registry.transition(donation.id, RESERVED)
    assert registry.get(donation.id).delivery_status == AVAILABLE


def test_reserve_twice_fails(registry, bilbao, seeker, other_seeker):
    donation = registry.create(bilbao)
    registry.transition(donation.id, RESERVED, seeker.user_id)
    first_reserved_at = registry.get(donation.id).reserved_at

    with pytest.raises(InvalidTransition) as excinfo:
        registry.transition(donation.id, RESERVED, other_seeker.user_id)

    assert excinfo.value.current == RESERVED
    donation = registry.get(donation.id)
    assert donation.requester_id == seeker.user_id
    assert donation.reserved_at == first_reserved_at


def test_deliver_only_from_reserved(registry, bilbao, seeker):
    donation = registry.create(bilbao)
    with pytest.raises(InvalidTransition):
        registry.transition(donation.id, DELIVERED)

    registry.transition(donation.id, RESERVED, seeker.user_id)
    delivered = registry.transition(donation.id, DELIVERED)
    assert delivered.delivery_status == DELIVERED
    assert delivered.delivered_at is not None
    assert delivered.requester_id == seeker.user_id

    with pytest.raises(InvalidTransition) as excinfo:
        registry.transition(donation.id, DELIVERED)
    assert excinfo.value.current == DELIVERED


@pytest.mark.parametrize("target", [AVAILABLE, "cancelled", ""])
def test_unknown_target_is_invalid(registry, bilbao, target):
    donation = registry.create(bilbao)
    with pytest.raises(InvalidTransition):
        registry.transition(donation.id, target)


@pytest.mark.parametrize("target", [RESERVED, DELIVERED, AVAILABLE])
def test_transition_unknown_donation(registry, seeker, target):
    with pytest.raises(DonationNotFound):
        registry.transition(404, target, seeker.user_id)


def test_reserve_unknown_donation_without_requester(registry):
    with pytest.raises(DonationNotFound):
        registry.transition(404, RESERVED)


def test_get_for_update(registry, bilbao):
    donation = registry.create(bilbao)
    assert registry.get(donation.id, for_update=True).id == donation.id
    with pytest.raises(DonationNotFound):
        registry.get(404, for_update=True)


def test_list_search(registry, bilbao):
    rice = registry.create(bilbao)
    coat = registry.create({
        **bilbao,
        "type": "Ropa",
        "description": "Abrigo de invierno",
        "condition": "Usado",
        "city": "Madrid",
    })
    table = registry.create({**bilbao, "type": "Muebles", "description": "Mesa de ARROZ lacado"})

    assert [d.id for d in registry.list(q="ropa")] == [coat.id]
    assert [d.id for d in registry.list(q="arroz")] == [table.id, rice.id]
    assert [d.id for d in registry.list(type="Alimentos")] == [rice.id]
    assert [d.id for d in registry.list(condition="Usado")] == [coat.id]
    assert [d.id for d in registry.list(city="Madrid")] == [coat.id]
    assert [d.id for d in registry.list(q="arroz", type="Alimentos", city="Bilbao")] == [rice.id]
    assert registry.list(q="abrigo", city="Bilbao") == []


def test_list_filters(registry, bilbao, donor, seeker):
    mine = registry.create({**bilbao, "donor_id": donor.user_id})
    other = registry.create({**bilbao, "city": "Madrid"})
    registry.transition(mine.id, RESERVED, seeker.user_id)

    assert [d.id for d in registry.list()] == [other.id, mine.id]
    assert [d.id for d in registry.list(status=AVAILABLE)] == [other.id]
    assert [d.id for d in registry.list(donor_id=donor.user_id)] == [mine.id]
    assert [d.id for d in registry.list(requester_id=seeker.user_id)] == [mine.id]
    assert registry.list(status=AVAILABLE, donor_id=donor.user_id) == []


def test_ranking_and_summary(registry, bilbao, seeker):
    registry.create(bilbao)
    registry.create(bilbao)
    madrid = registry.create({**bilbao, "city": "Madrid", "type": "Ropa"})
    registry.create({**bilbao, "city": "Bilbao", "type": "Muebles"})
    registry.transition(madrid.id, RESERVED, seeker.user_id)

    ranking = registry.ranking("city")
    assert [(e.value, e.count, e.percent) for e in ranking] == [
        ("Bilbao", 3, 75),
        ("Madrid", 1, 25),
    ]

    summary = registry.summary()
    assert summary.total == 4
    assert summary.by_status == {AVAILABLE: 3, RESERVED: 1, DELIVERED: 0}
    assert summary.cities == 2
    assert summary.types == 3


def test_ranking_unknown_field(registry):
    with pytest.raises(ValidationError):
        registry.ranking("latitude")


def test_ranking_empty(registry):
    assert registry.ranking("type") == []
