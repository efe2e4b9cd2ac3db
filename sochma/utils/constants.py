"""
sochma/utils/constants.py

Purpose: Centralized static content

- All user-facing messages
- Button labels
- Validation error texts

(Prevents hardcoding across the codebase)
"""

# ============================================================
# REGISTRATION QUESTIONS
# ============================================================

ASK_PHONE_MESSAGE = """📱 *Welcome to {bot_name}!*

To get started, I need to collect some information from you. Let's begin with your phone number.

Please enter your phone number in international format (e.g., +1234567890):"""

ASK_FULL_NAME_MESSAGE = """👤 *Great! Now let's get your name.*

Please enter your full name:"""

ASK_ROLE_MESSAGE = """🎯 *Perfect! Now let's determine your role.*

Are you primarily a:
• *Buyer* - Looking to purchase properties
• *Investor* - Looking to invest in real estate
• *Both* - You do both buying and investing"""

AGENDA_MESSAGE = """📋 *Bot Agenda & Features*

*{bot_name}* connects buyers and investors in the real estate market. Here's what I can help you with:

🏠 *Property Search*: Find properties that match your criteria
💰 *Investment Opportunities*: Discover profitable investment options
🤝 *Networking*: Connect with other buyers and investors
📊 *Market Insights*: Get the latest market trends and data
💬 *Direct Communication*: Chat directly with property owners and investors
🔔 *Notifications*: Stay updated on new opportunities"""

CONFIRM_COMPLETION_MESSAGE = """✅ *Almost done!*

Ready to complete your registration?"""

REGISTRATION_COMPLETE_MESSAGE = """✅ *Registration Complete!*

Welcome to {bot_name}, {full_name}!

Your registration details:
📱 Phone: {phone_number}
👤 Name: {full_name}
🎯 Role: {role}

You can now start using all the bot features. Use /help to see available commands."""

# ============================================================
# VALIDATION ERRORS
# ============================================================

ERROR_INVALID_PHONE = "Invalid phone number format. Please enter a valid phone number (e.g., +1234567890)"
ERROR_INVALID_NAME = "Please enter a valid full name (at least 2 characters)"
ERROR_INVALID_ROLE = "Invalid role selection. Please use the buttons below."
ERROR_TEXT_REQUIRED = "I can only read text at this step."

# ============================================================
# BUTTON LABELS
# ============================================================

BUTTON_ROLE_BUYER = "🏠 Buyer"
BUTTON_ROLE_INVESTOR = "💰 Investor"
BUTTON_ROLE_BOTH = "🔄 Both"
BUTTON_VIEW_AGENDA = "👍 Got it"
BUTTON_COMPLETE_REGISTRATION = "✅ Complete Registration"
BUTTON_MY_PROFILE = "ℹ️ My Profile"
BUTTON_HELP = "❓ Help"

ROLE_DISPLAY = {
    "buyer": "🏠 Buyer",
    "investor": "💰 Investor",
    "both": "🔄 Buyer & Investor",
}

# ============================================================
# REGISTERED USERS
# ============================================================

WELCOME_BACK_MESSAGE = """👋 Welcome back, {full_name}!

You're already registered and ready to use all features of {bot_name}.

Use the buttons below or type /help for more options!"""

ALREADY_REGISTERED_MESSAGE = """✅ You're already registered, {full_name}.

Use /profile to see your details."""

HELP_MESSAGE = """🤖 *{bot_name} Help*

*Available Commands:*
/start - Show the main menu
/profile - Show your registration details
/help - Show this help message

*Registration Process:*
1. 📱 Enter your phone number
2. 👤 Enter your full name
3. 🎯 Select your role (Buyer/Investor/Both)
4. 📋 Review bot features and agenda
5. ✅ Complete registration"""

PROFILE_MESSAGE = """ℹ️ *Your Information*

👤 Name: {full_name}
📱 Phone: {phone_number}
🎯 Role: {role}
🌍 Language: {language_code}
📅 Registered: {registered_at}"""

DEFAULT_REPLY_MESSAGE = "Got it, {full_name}! Try /help for more options 💡"

UNSUPPORTED_MEDIA_MESSAGE = "I received your message! Right now I can only work with text and buttons 😊"
