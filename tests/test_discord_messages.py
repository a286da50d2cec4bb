import unittest
from datetime import datetime, timezone

from application.services import AllowListResult, AllowListStatus, ClaimResult, ClaimStatus
from domain.models import AllowListEntry, IdentityBinding, PlayerInfo
from domain.ports import RoleGrantOutcome
from interfaces.discord import messages


NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)
BINDING = IdentityBinding(
    requester_id="111",
    requester_label="alice",
    external_id="25CDF5286DC38DAD",
    external_label="Hero",
    created_at=NOW,
    updated_at=NOW,
)


class DiscordMessagesTests(unittest.TestCase):
    def test_claim_reply_hides_player_name(self):
        result = ClaimResult(
            status=ClaimStatus.BOUND,
            external_id=BINDING.external_id,
            binding=BINDING,
            allow_listed=True,
        )

        text = messages.claim_reply(result)

        self.assertIn("25CDF5286DC38DAD", text)
        self.assertIn("clan member", text)
        self.assertNotIn("Hero", text)

    def test_log_message_includes_player_name(self):
        result = ClaimResult(status=ClaimStatus.BOUND, binding=BINDING)

        text = messages.verification_log(result)

        self.assertIn("Hero", text)
        self.assertIn("Clan: no", text)

    def test_failures_have_distinct_messages(self):
        texts = {
            status: messages.claim_reply(ClaimResult(status=status, external_id="ABCDEF0123456789"))
            for status in (
                ClaimStatus.INVALID_FORMAT,
                ClaimStatus.UNKNOWN_EXTERNAL_ID,
                ClaimStatus.LOOKUP_UNAVAILABLE,
                ClaimStatus.CONFLICT,
            )
        }

        self.assertEqual(len(set(texts.values())), len(texts))
        self.assertIn("ABCDEF0123456789", texts[ClaimStatus.CONFLICT])
        self.assertIn("temporarily", texts[ClaimStatus.LOOKUP_UNAVAILABLE])

    def test_player_info_reply(self):
        result = ClaimResult(
            status=ClaimStatus.FOUND,
            external_id=BINDING.external_id,
            player=PlayerInfo(player_id=BINDING.external_id, username="hero01"),
        )

        self.assertIn("hero01", messages.player_info_reply(result))

    def test_allow_list_listing(self):
        empty = AllowListResult(status=AllowListStatus.LISTED)
        listed = AllowListResult(
            status=AllowListStatus.LISTED,
            entries=[AllowListEntry("25CDF5286DC38DAD", None, NOW, NOW)],
        )

        self.assertIn("empty", messages.allow_list_reply(empty))
        self.assertEqual(messages.allow_list_reply(listed), "25CDF5286DC38DAD -")

    def test_grant_warning_only_on_failure(self):
        self.assertEqual(messages.grant_warning(RoleGrantOutcome(ok=True)), "")
        self.assertIn("contact an admin", messages.grant_warning(RoleGrantOutcome(ok=False)))


if __name__ == "__main__":
    unittest.main()
