# bot/handlers.py
import time

from telegram import Update
from telegram.ext import ContextTypes

from services.errors import InsufficientDataError
from services.trade_orchestrator import format_indicators

# --- Command Handlers ---

async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Displays a help message with all available commands."""
    help_text = """
    <b>Welcome to the Trend Signal Bot!</b>

    This bot tracks token price trends and can trade automatically when a trend turns.

    <b><u>Available Commands:</u></b>
    /subscribe &lt;mint&gt; [auto] - Receive signals for a token (add "auto" to auto-trade)
    /unsubscribe &lt;mint&gt; - Stop receiving signals for a token
    /trend &lt;mint&gt; - Show the current trend and indicators of a token
    /status - Get bot status and tracked tokens
    /help - Show this help message
    """
    await update.message.reply_html(help_text)

async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Checks and reports the bot's uptime and the tokens being tracked."""
    tracker = context.application.bot_data.get('tracker')
    start_time = context.application.bot_data.get('start_time', 0)

    # Calculate uptime
    uptime_seconds = time.time() - start_time
    uptime_str = time.strftime('%H:%M:%S', time.gmtime(uptime_seconds))

    tracked = tracker.tracked_assets if tracker else []
    status_text = (
        f"<b>🤖 Bot Status</b>\n"
        f"Uptime: <code>{uptime_str}</code>\n\n"
        f"<b>🔍 Tracker</b>\n"
        f"Tracked tokens: <code>{len(tracked)}</code>\n"
    )
    for asset in tracked:
        status_text += f"• <code>{asset}</code>\n"

    await update.message.reply_html(status_text)

async def trend_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Shows the stored trend and freshly computed indicators for a token."""
    if not context.args:
        await update.message.reply_text("Usage: /trend <token mint>")
        return

    asset = context.args[0]
    tracker = context.application.bot_data['tracker']
    try:
        indicators, state = await tracker.peek(asset)
    except InsufficientDataError as e:
        await update.message.reply_text(f"Not enough price data for {asset} yet ({e.available}/{e.required} samples).")
        return
    except Exception as e:
        print(f"Error in /trend command: {e}")
        await update.message.reply_text("An error occurred while computing the trend.")
        return

    response = (
        f"Trend for {asset}: {state.trend.value}\n\n"
        f"📈 Current Indicators:\n"
        f"{format_indicators(indicators)}"
    )
    await update.message.reply_text(response)

async def subscribe_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Subscribes the chat to a token's signals and starts tracking it."""
    if not context.args:
        await update.message.reply_text("Usage: /subscribe <token mint> [auto]")
        return

    asset = context.args[0]
    auto_trade = len(context.args) > 1 and context.args[1].lower() == 'auto'
    repository = context.application.bot_data['repository']
    tracker = context.application.bot_data['tracker']

    await repository.add_subscription(update.effective_chat.id, asset, auto_trade)
    tracker.start_tracking(asset)

    mode = "with auto-trading" if auto_trade else "signals only"
    await update.message.reply_text(f"Subscribed to {asset} ({mode}).")

async def unsubscribe_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Removes the chat's subscription and stops tracking tokens nobody follows."""
    if not context.args:
        await update.message.reply_text("Usage: /unsubscribe <token mint>")
        return

    asset = context.args[0]
    repository = context.application.bot_data['repository']
    tracker = context.application.bot_data['tracker']

    removed = await repository.remove_subscription(update.effective_chat.id, asset)
    if not removed:
        await update.message.reply_text(f"You are not subscribed to {asset}.")
        return

    if not await repository.subscriptions_for_asset(asset):
        await tracker.stop_tracking(asset)
    await update.message.reply_text(f"Unsubscribed from {asset}.")
