from __future__ import annotations

import logging
import re
from typing import Optional

import discord
from discord.ext import commands

from application.services import (
    AllowListManager,
    ClaimReconciler,
    ClaimResult,
    ClaimStatus,
    RequesterContext,
)
from config import Settings
from domain.ports import PlayerDirectory
from domain.repositories import AllowListRepository, IdentityBindingRepository
from interfaces.discord import messages
from interfaces.discord.roles import DiscordAdminGuard, DiscordRoleGrantNotifier


log = logging.getLogger(__name__)

MENTION_RE = re.compile(r"<@!?(\d+)>")


def _build_requester_context(user: discord.abc.User) -> RequesterContext:
    """Create a `RequesterContext` from a Discord user."""

    # `str(user)` is `name#1234` for legacy accounts and the plain
    # username otherwise; it is what admins type into !admin-show.
    return RequesterContext(requester_id=str(user.id), label=str(user))


def _resolve_target_id(reconciler: ClaimReconciler, target: str) -> Optional[str]:
    """
    Turn an `!admin-edit` target into a Discord user ID.

    Mentions and raw IDs are used as-is; anything else is looked up among
    the stored requester labels only.
    """

    target = target.strip()
    mention = MENTION_RE.fullmatch(target)
    if mention:
        return mention.group(1)
    if target.isdigit():
        return target
    return reconciler.resolve_requester_id(target)


def create_discord_bot(
    settings: Settings,
    bindings: IdentityBindingRepository,
    allow_list: AllowListRepository,
    directory: PlayerDirectory,
) -> commands.Bot:
    """
    Configure and return a Discord bot wired to the claim reconciler and
    the allow list manager.
    """

    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.members = True

    # Disable the default help command so we can provide our own `!help`.
    bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)

    guard = DiscordAdminGuard(bot, settings.primary_guild_id, settings.admin_role_id)
    notifier = DiscordRoleGrantNotifier(
        bot,
        settings.grant_guild_id,
        settings.always_role_ids,
        settings.clan_role_id,
    )
    reconciler = ClaimReconciler(bindings, allow_list, directory, guard)
    allow_list_manager = AllowListManager(allow_list, directory, guard)

    async def send_to_log_channel(text: str) -> None:
        if not settings.log_channel_id or not text:
            return
        channel_id = int(settings.log_channel_id)
        try:
            channel = bot.get_channel(channel_id) or await bot.fetch_channel(channel_id)
            if not isinstance(channel, discord.abc.Messageable):
                log.warning("Log channel %s is not a text channel", channel_id)
                return
            await channel.send(text)
        except discord.DiscordException as exc:
            log.warning("Could not post to log channel %s: %s", channel_id, exc)

    async def finish_claim(ctx: commands.Context, result: ClaimResult) -> None:
        if result.status is not ClaimStatus.BOUND:
            await ctx.reply(messages.claim_reply(result))
            return

        outcome = await notifier.grant(str(ctx.author.id), result.allow_listed)
        await send_to_log_channel(messages.verification_log(result))
        await ctx.reply(messages.claim_reply(result) + messages.grant_warning(outcome))

    @bot.event
    async def on_ready():
        log.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, (commands.MissingRequiredArgument, commands.BadArgument)):
            await ctx.reply(f"❌ {error}\nType !help to see available commands.")
            return
        original = getattr(error, "original", error)
        log.error(
            "Command %s failed",
            ctx.command.qualified_name if ctx.command else "?",
            exc_info=(type(original), original, original.__traceback__),
        )
        await ctx.reply("❌ Internal error, please try again later.")

    @bot.command(name="help")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(messages.HELP_TEXT)

    @bot.command(name="verify", aliases=["edit"])
    async def verify_cmd(ctx: commands.Context, player_id: str):
        requester = _build_requester_context(ctx.author)
        result = await reconciler.submit_claim(requester, player_id)
        await finish_claim(ctx, result)

    @bot.command(name="show")
    async def show_cmd(ctx: commands.Context):
        binding = reconciler.binding_for(str(ctx.author.id))
        if binding is None:
            await ctx.reply("❌ You have not linked a player ID yet.")
            return
        await ctx.reply(messages.describe_binding(binding, include_player_name=False))

    @bot.command(name="admin-show")
    async def admin_show_cmd(ctx: commands.Context, *, discord_name: str):
        result = await reconciler.find_binding_by_label(str(ctx.author.id), discord_name)
        await ctx.reply(messages.admin_claim_reply(result))

    @bot.command(name="admin-edit")
    async def admin_edit_cmd(ctx: commands.Context, target: str, player_id: str):
        target_id = _resolve_target_id(reconciler, target)
        result = await reconciler.reassign_claim(
            str(ctx.author.id),
            target_id or "",
            player_id,
        )
        await ctx.reply(messages.admin_claim_reply(result))

    @bot.command(name="admin-revoke")
    async def admin_revoke_cmd(ctx: commands.Context, player_id: str):
        result = await reconciler.revoke_claim(str(ctx.author.id), player_id)
        await ctx.reply(messages.admin_claim_reply(result))

    @bot.command(name="py-info")
    async def py_info_cmd(ctx: commands.Context, player_id: str):
        result = await reconciler.describe_player(str(ctx.author.id), player_id)
        await ctx.reply(messages.player_info_reply(result))

    @bot.command(name="add")
    async def add_cmd(ctx: commands.Context, player_id: str):
        result = await allow_list_manager.add(str(ctx.author.id), player_id)
        await ctx.reply(messages.allow_list_reply(result))

    @bot.command(name="delete")
    async def delete_cmd(ctx: commands.Context, player_id: str):
        result = await allow_list_manager.remove(str(ctx.author.id), player_id)
        await ctx.reply(messages.allow_list_reply(result))

    @bot.command(name="list")
    async def list_cmd(ctx: commands.Context):
        result = await allow_list_manager.list_entries(str(ctx.author.id))
        await ctx.reply(messages.allow_list_reply(result))

    return bot
