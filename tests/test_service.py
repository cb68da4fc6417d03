import pytest

from parcel_tracker.errors import DuplicateTrackingId, OrderNotFound, ValidationError
from parcel_tracker.mail import MailSender
from parcel_tracker.models import OrderCreate, OrderUpdate
from parcel_tracker.notifications import NotificationDispatcher
from parcel_tracker.service import OrderService


class ScriptedGenerator:
    def __init__(self, *codes):
        self.codes = list(codes)
        self.calls = 0

    def generate(self):
        self.calls += 1
        return self.codes.pop(0)


class ExplodingSender(MailSender):
    def send(self, to, subject, body, is_html=True):
        raise ConnectionError("SMTP unreachable")


def two_step_timeline(last="In Transit"):
    return [
        {"status": "Order Placed", "date": "2025-06-01T10:00:00", "time": "10:00:00",
         "location": "New York, NY", "completed": True},
        {"status": last, "date": "2025-06-02T11:00:00", "time": "11:00:00", "location": "Chicago, IL"},
    ]


def status_updates(mailer):
    return [m for m in mailer.sent if "Status Update" in m["subject"]]


class TestCreateOrder:
    def test_assigns_tracking_id_and_initial_entry(self, service, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))

        assert order.tracking_id.startswith("PX")
        entries = order.timeline_entries()
        assert len(entries) == 1
        assert entries[0].status == "Order Placed"
        assert entries[0].completed is True
        assert entries[0].location == "New York, NY"
        assert order.updated_at >= order.created_at

    def test_normalizes_customer_fields(self, service, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        customer = order.customer_info()
        assert customer.email == "jane.doe@example.com"
        assert order.package_info().special_instructions == ""

    def test_package_type_defaults_to_other(self, service, order_payload):
        payload = order_payload(package={"weight": "1kg", "dimensions": "1x1x1", "value": "$5"})
        order = service.create_order(OrderCreate.model_validate(payload))
        assert order.package_info().type.value == "Other"

    def test_supplied_timeline_is_kept(self, service, order_payload):
        payload = order_payload(timeline=two_step_timeline())
        order = service.create_order(OrderCreate.model_validate(payload))
        assert [e.status for e in order.timeline_entries()] == ["Order Placed", "In Transit"]

    def test_tracking_ids_are_unique(self, service, order_payload):
        codes = {service.create_order(OrderCreate.model_validate(order_payload())).tracking_id for _ in range(10)}
        assert len(codes) == 10

    def test_sends_confirmation(self, service, mailer, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        assert len(mailer.sent) == 1
        assert order.tracking_id in mailer.sent[0]["subject"]

    @pytest.mark.parametrize("group", ["customer", "shipping", "package"])
    def test_missing_group(self, service, order_payload, group):
        payload = order_payload()
        del payload[group]
        with pytest.raises(ValidationError) as exc:
            service.create_order(OrderCreate.model_validate(payload))
        assert exc.value.group == group
        assert exc.value.message == f"{group.capitalize()} information is required"
        assert service.list_orders()[1] == 0

    def test_blank_required_field(self, service, order_payload, mailer):
        payload = order_payload()
        payload["customer"]["phone"] = "   "
        with pytest.raises(ValidationError) as exc:
            service.create_order(OrderCreate.model_validate(payload))
        assert exc.value.group == "customer"
        assert mailer.sent == []

    def test_retries_on_collision(self, store, mailer, order_payload):
        first = OrderService(store, NotificationDispatcher(mailer), generator=ScriptedGenerator("PXTAKEN"))
        first.create_order(OrderCreate.model_validate(order_payload()))

        gen = ScriptedGenerator("PXTAKEN", "PXFRESH")
        second = OrderService(store, NotificationDispatcher(mailer), generator=gen)
        order = second.create_order(OrderCreate.model_validate(order_payload()))

        assert order.tracking_id == "PXFRESH"
        assert gen.calls == 2

    def test_gives_up_after_bounded_attempts(self, store, mailer, order_payload):
        seed = OrderService(store, NotificationDispatcher(mailer), generator=ScriptedGenerator("PXTAKEN"))
        seed.create_order(OrderCreate.model_validate(order_payload()))

        gen = ScriptedGenerator(*["PXTAKEN"] * 3)
        svc = OrderService(store, NotificationDispatcher(mailer), generator=gen, max_id_attempts=3)
        with pytest.raises(DuplicateTrackingId):
            svc.create_order(OrderCreate.model_validate(order_payload()))
        assert gen.calls == 3

    def test_explicit_duplicate_is_not_retried(self, service, order_payload):
        service.create_order(OrderCreate.model_validate(order_payload(trackingId="px-custom-1")))
        with pytest.raises(DuplicateTrackingId):
            service.create_order(OrderCreate.model_validate(order_payload(trackingId="PX-CUSTOM-1")))

    def test_mail_failure_does_not_block_create(self, store, order_payload):
        svc = OrderService(store, NotificationDispatcher(ExplodingSender()))
        order = svc.create_order(OrderCreate.model_validate(order_payload()))
        assert svc.get_order(order.tracking_id.lower()).id == order.id

    def test_deferred_dispatch(self, store, mailer, order_payload):
        queued = []
        svc = OrderService(store, NotificationDispatcher(mailer), defer=lambda fn, *args: queued.append((fn, args)))
        svc.create_order(OrderCreate.model_validate(order_payload()))

        assert mailer.sent == []
        fn, args = queued[0]
        fn(*args)
        assert len(mailer.sent) == 1


class TestUpdateOrder:
    def test_scenario_new_york_to_los_angeles(self, service, mailer, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        assert [e.location for e in order.timeline_entries()] == ["New York, NY"]

        service.update_order(order.id, OrderUpdate.model_validate({"timeline": two_step_timeline()}))

        updates = status_updates(mailer)
        assert len(updates) == 1
        assert "In Transit" in updates[0]["body"]
        assert "Chicago, IL" in updates[0]["body"]

    def test_resaving_same_timeline_sends_nothing(self, service, mailer, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload(timeline=two_step_timeline())))
        service.update_order(order.tracking_id, OrderUpdate.model_validate({"timeline": two_step_timeline()}))
        assert status_updates(mailer) == []

    def test_field_patch_without_timeline_sends_nothing(self, service, mailer, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        updated = service.update_order(order.id, OrderUpdate.model_validate({"shipping": {"to": "Denver, CO"}}))
        assert updated.shipping_info().to == "Denver, CO"
        assert status_updates(mailer) == []

    def test_empty_timeline_rejected(self, service, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        with pytest.raises(ValidationError) as exc:
            service.update_order(order.id, OrderUpdate.model_validate({"timeline": []}))
        assert exc.value.group == "timeline"
        assert len(service.get_order(order.id).timeline) == 1

    def test_mail_failure_does_not_hide_update(self, store, mailer, order_payload):
        svc = OrderService(store, NotificationDispatcher(mailer))
        order = svc.create_order(OrderCreate.model_validate(order_payload()))
        mailer.configure(should_succeed=False)

        svc.update_order(order.id, OrderUpdate.model_validate({"timeline": two_step_timeline("Delayed")}))

        assert svc.get_order(order.tracking_id).current_status == "Delayed"

    def test_unknown_reference(self, service):
        with pytest.raises(OrderNotFound):
            service.update_order("PXMISSING", OrderUpdate())


class TestAppendStatus:
    def test_appends_to_destination_by_default(self, service, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        updated = service.append_status(order.tracking_id, "Delivered", notes="Left with doorman")

        last = updated.timeline_entries()[-1]
        assert len(updated.timeline) == 2
        assert last.status == "Delivered"
        assert last.completed is True
        assert last.location == "Los Angeles, CA"
        assert last.notes == "Left with doorman"

    def test_does_not_notify(self, service, mailer, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        service.append_status(order.id, "In Transit", location="Chicago, IL")
        assert status_updates(mailer) == []

    def test_status_required(self, service, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        with pytest.raises(ValidationError):
            service.append_status(order.id, "  ")


class TestDeleteOrder:
    def test_delete_by_tracking_id(self, service, mailer, order_payload):
        order = service.create_order(OrderCreate.model_validate(order_payload()))
        order_id, code = order.id, order.tracking_id
        service.delete_order(code.lower())

        with pytest.raises(OrderNotFound):
            service.get_order(order_id)
        with pytest.raises(OrderNotFound):
            service.get_order(code)
        assert len(mailer.sent) == 1
