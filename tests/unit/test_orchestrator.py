"""Unit tests for ResourceOrchestrator."""

import asyncio

import pytest

from gitlab_reconciler.config import PollingConfig
from gitlab_reconciler.exceptions import (
    MalformedIdentityError,
    OperationCancelledError,
    PollTimeoutError,
    ResourceNotFoundError,
    ServerError,
    ValidationError,
)
from gitlab_reconciler.orchestrator import ResourceOrchestrator
from gitlab_reconciler.resources import (
    GroupDefinition,
    PipelineScheduleVariableDefinition,
    ProjectHookDefinition,
    UserSSHKeyDefinition,
)


@pytest.fixture
def groups(mock_client, fast_polling):
    return ResourceOrchestrator(GroupDefinition(), mock_client, fast_polling)


@pytest.fixture
def hooks(mock_client, fast_polling):
    return ResourceOrchestrator(ProjectHookDefinition(), mock_client, fast_polling)


@pytest.fixture
def existing_group_bag(groups, sample_group):
    """Bag for a group persisted by a previous cycle."""
    bag = groups.new_bag(identity="42")
    groups.mapper.to_bag(sample_group, bag)
    state = bag.to_state()
    return groups.new_bag(config=state, state=state, identity="42")


@pytest.mark.asyncio
class TestCreate:
    """Test the create cycle."""

    async def test_create_then_read(self, groups, mock_client, sample_group):
        """Test that create stores the identity and reads computed fields."""
        mock_client.post_json.return_value = {"id": 42}
        mock_client.get_json.return_value = sample_group
        bag = groups.new_bag(
            config={"name": "Platform", "path": "platform", "visibility_level": "private"}
        )

        await groups.create(bag)

        mock_client.post_json.assert_awaited_once_with(
            "/groups",
            {
                "name": "Platform",
                "path": "platform",
                "lfs_enabled": True,
                "request_access_enabled": False,
                "visibility": "private",
            },
        )
        mock_client.get_json.assert_awaited_once_with("/groups/42")
        assert bag.identity == "42"
        # Computed-only values come from the remote entity
        assert bag.get("full_path") == "acme/platform"
        assert bag.get("web_url") == sample_group["web_url"]
        assert bag.get("runners_token") == "GR1348941secret"
        assert bag.get("parent_id") == 7

    async def test_create_failure_stores_no_identity(self, groups, mock_client, server_error):
        """Test that a failed create leaves the bag without identity."""
        mock_client.post_json.side_effect = server_error
        bag = groups.new_bag(config={"name": "Platform", "path": "platform"})

        with pytest.raises(ServerError):
            await groups.create(bag)

        assert bag.identity == ""
        mock_client.get_json.assert_not_awaited()

    async def test_create_validation_before_remote_call(self, groups, mock_client):
        """Test that invalid values fail before anything is sent."""
        bag = groups.new_bag(
            config={"name": "Platform", "path": "platform", "visibility_level": "secret"}
        )

        with pytest.raises(ValidationError):
            await groups.create(bag)

        mock_client.post_json.assert_not_awaited()

    async def test_create_missing_required(self, groups, mock_client):
        """Test that required attributes must be set."""
        bag = groups.new_bag(config={"name": "Platform"})

        with pytest.raises(ValidationError) as exc_info:
            await groups.create(bag)

        assert exc_info.value.attribute == "path"
        mock_client.post_json.assert_not_awaited()

    async def test_create_scoped_resource(self, hooks, mock_client, sample_hook):
        """Test that parent references build a composite identity."""
        mock_client.post_json.return_value = sample_hook
        mock_client.get_json.return_value = sample_hook
        bag = hooks.new_bag(
            config={"project": "acme/app", "url": "https://ci.example.com/hook", "token": "s3cret"}
        )

        await hooks.create(bag)

        path, request = mock_client.post_json.await_args.args
        assert path == "/projects/acme%2Fapp/hooks"
        assert request["token"] == "s3cret"
        assert request["releases_events"] is False
        assert "project" not in request
        assert bag.identity == "acme/app:7"
        assert bag.get("hook_id") == 7
        assert bag.get("token") == "s3cret"


@pytest.mark.asyncio
class TestRead:
    """Test the read cycle."""

    async def test_not_found_clears_identity(self, groups, mock_client, not_found, existing_group_bag):
        """Test that a 404 is absorbed by forgetting the resource."""
        mock_client.get_json.side_effect = not_found

        await groups.read(existing_group_bag)

        assert existing_group_bag.identity == ""

    async def test_marked_for_deletion_is_gone(self, groups, mock_client, sample_group, existing_group_bag):
        """Test that a group pending deletion counts as gone."""
        mock_client.get_json.return_value = {
            **sample_group,
            "marked_for_deletion_on": "2024-05-01",
        }

        await groups.read(existing_group_bag)

        assert existing_group_bag.identity == ""

    async def test_fatal_error_leaves_bag_untouched(
        self, groups, mock_client, server_error, existing_group_bag
    ):
        """Test that other failures propagate without touching the bag."""
        mock_client.get_json.side_effect = server_error
        before = existing_group_bag.to_state()

        with pytest.raises(ServerError):
            await groups.read(existing_group_bag)

        assert existing_group_bag.identity == "42"
        assert existing_group_bag.to_state() == before

    async def test_malformed_identity(self, hooks, mock_client):
        """Test that an undecodable identity fails with the identity."""
        bag = hooks.new_bag(identity="acme/app")

        with pytest.raises(MalformedIdentityError) as exc_info:
            await hooks.read(bag)

        assert exc_info.value.identity == "acme/app"
        mock_client.get_json.assert_not_awaited()

    async def test_read_without_identity(self, groups, mock_client):
        """Test that a resource that was never created is not read."""
        await groups.read(groups.new_bag(config={"name": "a", "path": "a"}))

        mock_client.get_json.assert_not_awaited()

    async def test_read_restores_scope_from_identity(self, mock_client, fast_polling):
        """Test that identity parts are written back to the bag."""
        variables = ResourceOrchestrator(
            PipelineScheduleVariableDefinition(), mock_client, fast_polling
        )
        mock_client.get_json.return_value = {
            "id": 3,
            "variables": [
                {"key": "OTHER", "value": "x", "variable_type": "env_var"},
                {"key": "DEPLOY:TARGET", "value": "prod", "variable_type": "env_var"},
            ],
        }
        bag = variables.new_bag(identity="acme/app:3:DEPLOY:TARGET")

        await variables.read(bag)

        mock_client.get_json.assert_awaited_once_with("/projects/acme%2Fapp/pipeline_schedules/3")
        assert bag.get("project") == "acme/app"
        assert bag.get("pipeline_schedule_id") == 3
        assert bag.get("key") == "DEPLOY:TARGET"
        assert bag.get("value") == "prod"
        assert bag.identity == "acme/app:3:DEPLOY:TARGET"

    async def test_missing_schedule_variable_is_not_found(self, mock_client, fast_polling):
        """Test that a variable absent from its schedule is forgotten."""
        variables = ResourceOrchestrator(
            PipelineScheduleVariableDefinition(), mock_client, fast_polling
        )
        mock_client.get_json.return_value = {"id": 3, "variables": []}
        bag = variables.new_bag(identity="acme/app:3:GONE")

        await variables.read(bag)

        assert bag.identity == ""


@pytest.mark.asyncio
class TestUpdate:
    """Test the update cycle."""

    async def test_update_sends_changes_then_reads(
        self, groups, mock_client, sample_group, existing_group_bag
    ):
        """Test the minimal request and the trailing read."""
        existing_group_bag.set("description", "New description")
        mock_client.put_json.return_value = {**sample_group, "description": "New description"}
        mock_client.get_json.return_value = {**sample_group, "description": "New description"}

        await groups.update(existing_group_bag)

        mock_client.put_json.assert_awaited_once_with(
            "/groups/42", {"description": "New description", "visibility": "private"}
        )
        mock_client.get_json.assert_awaited_once_with("/groups/42")
        assert existing_group_bag.get("description") == "New description"

    async def test_update_with_only_always_set_field(
        self, groups, mock_client, sample_group, existing_group_bag
    ):
        """Test that always-set fields are sent even with no changes."""
        mock_client.put_json.return_value = sample_group
        mock_client.get_json.return_value = sample_group

        await groups.update(existing_group_bag)

        mock_client.put_json.assert_awaited_once_with("/groups/42", {"visibility": "private"})

    async def test_update_no_changes_is_noop(self, mock_client, fast_polling):
        """Test that nothing is sent when nothing changed."""
        variables = ResourceOrchestrator(
            PipelineScheduleVariableDefinition(), mock_client, fast_polling
        )
        state = {
            "project": "acme/app",
            "pipeline_schedule_id": 3,
            "key": "DEPLOY",
            "value": "prod",
            "variable_type": "env_var",
        }
        bag = variables.new_bag(config=state, state=state, identity="acme/app:3:DEPLOY")

        await variables.update(bag)

        mock_client.put_json.assert_not_awaited()
        mock_client.get_json.assert_not_awaited()

    async def test_update_force_new_rejected(self, groups, mock_client, existing_group_bag):
        """Test that a change requiring replacement is not sent."""
        existing_group_bag.set("parent_id", 99)

        assert groups.requires_replace(existing_group_bag) == ["parent_id"]
        with pytest.raises(ValidationError):
            await groups.update(existing_group_bag)

        mock_client.put_json.assert_not_awaited()

    async def test_update_without_identity(self, groups):
        """Test that a resource must exist to be updated."""
        with pytest.raises(ValidationError):
            await groups.update(groups.new_bag(config={"name": "a", "path": "a"}))


@pytest.mark.asyncio
class TestDelete:
    """Test the delete cycle."""

    async def test_delete_not_found_succeeds(self, hooks, mock_client, not_found):
        """Test that deleting a missing entity succeeds."""
        mock_client.delete.side_effect = not_found
        bag = hooks.new_bag(
            config={"project": "acme/app", "url": "https://ci.example.com"},
            identity="acme/app:7",
        )

        await hooks.delete(bag)

        assert bag.identity == ""
        mock_client.delete.assert_awaited_once_with("/projects/acme%2Fapp/hooks/7")

    async def test_delete_synchronous_resource(self, hooks, mock_client):
        """Test that synchronous deletes do not poll."""
        bag = hooks.new_bag(identity="acme/app:7")

        await hooks.delete(bag)

        assert bag.identity == ""
        mock_client.get_json.assert_not_awaited()

    async def test_delete_waits_for_group_removal(
        self, groups, mock_client, sample_group, not_found, existing_group_bag
    ):
        """Test that group deletion polls until the group is gone."""
        mock_client.get_json.side_effect = [sample_group, sample_group, not_found]

        await groups.delete(existing_group_bag)

        assert existing_group_bag.identity == ""
        assert mock_client.get_json.await_count == 3

    async def test_delete_done_when_marked_for_deletion(
        self, groups, mock_client, sample_group, existing_group_bag
    ):
        """Test that a deletion mark ends the wait."""
        mock_client.get_json.return_value = {
            **sample_group,
            "marked_for_deletion_on": "2024-05-01",
        }

        await groups.delete(existing_group_bag)

        assert existing_group_bag.identity == ""

    async def test_delete_already_marked(
        self, groups, mock_client, sample_group, forbidden, existing_group_bag
    ):
        """Test that a repeated delete of a marked group is satisfied."""
        forbidden.response_text = '{"message":"Group has been already marked for deletion"}'
        mock_client.delete.side_effect = forbidden
        mock_client.get_json.return_value = {
            **sample_group,
            "marked_for_deletion_on": "2024-05-01",
        }

        await groups.delete(existing_group_bag)

        assert existing_group_bag.identity == ""

    async def test_delete_fatal_error(self, groups, mock_client, forbidden, existing_group_bag):
        """Test that other failures keep the identity."""
        mock_client.delete.side_effect = forbidden

        with pytest.raises(type(forbidden)):
            await groups.delete(existing_group_bag)

        assert existing_group_bag.identity == "42"

    async def test_delete_timeout(self, mock_client, sample_group, existing_group_bag):
        """Test that a group that never disappears times out."""
        groups = ResourceOrchestrator(
            GroupDefinition(),
            mock_client,
            PollingConfig(interval=0.01, initial_delay=0, timeout=0.05),
        )
        mock_client.get_json.return_value = sample_group

        with pytest.raises(PollTimeoutError) as exc_info:
            await groups.delete(existing_group_bag)

        assert exc_info.value.last_state == "deleting"
        assert existing_group_bag.identity == "42"

    async def test_delete_cancelled(self, mock_client, sample_group, existing_group_bag):
        """Test that cancelling the wait surfaces as a cancellation."""
        groups = ResourceOrchestrator(
            GroupDefinition(),
            mock_client,
            PollingConfig(interval=10, initial_delay=0, timeout=60),
        )
        mock_client.get_json.return_value = sample_group
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(OperationCancelledError):
            await groups.delete(existing_group_bag, cancel_event=cancel)

        assert existing_group_bag.identity == "42"


@pytest.mark.asyncio
class TestImport:
    """Test adopting existing entities."""

    async def test_import_hook(self, hooks, mock_client, sample_hook):
        """Test that import restores scope and reads the entity."""
        mock_client.get_json.return_value = sample_hook
        bag = hooks.new_bag()

        await hooks.import_resource(bag, "acme/app:7")

        mock_client.get_json.assert_awaited_once_with("/projects/acme%2Fapp/hooks/7")
        assert bag.identity == "acme/app:7"
        assert bag.get("project") == "acme/app"
        assert bag.get("url") == "https://ci.example.com/hook"

    async def test_import_missing(self, groups, mock_client, not_found):
        """Test that importing a missing entity fails."""
        mock_client.get_json.side_effect = not_found

        with pytest.raises(ResourceNotFoundError):
            await groups.import_resource(groups.new_bag(), "42")

    async def test_import_malformed(self, groups):
        """Test that a malformed import identity is rejected."""
        with pytest.raises(MalformedIdentityError):
            await groups.import_resource(groups.new_bag(), "not-a-number")

    async def test_import_user_ssh_key(self, mock_client, fast_polling):
        """Test that the key is found by walking the user's keys."""
        from gitlab_reconciler.pagination import Page

        keys = ResourceOrchestrator(UserSSHKeyDefinition(), mock_client, fast_polling)
        mock_client.get_page.side_effect = [
            Page(items=[{"id": n, "title": f"k{n}", "key": "ssh-ed25519 AAA"} for n in range(20)], next_page=2),
            Page(
                items=[
                    {
                        "id": 21,
                        "title": "laptop",
                        "key": "ssh-ed25519 BBB",
                        "created_at": "2024-01-02T03:04:05.000Z",
                        "expires_at": None,
                    }
                ],
                next_page=0,
            ),
        ]
        bag = keys.new_bag()

        await keys.import_resource(bag, "5:21")

        assert mock_client.get_page.await_count == 2
        assert bag.get("user_id") == 5
        assert bag.get("key_id") == 21
        assert bag.get("title") == "laptop"
        assert bag.get("created_at") == "2024-01-02T03:04:05Z"
