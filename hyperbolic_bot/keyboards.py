from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from .catalog import Category, models_in

CATEGORY_LABELS = {
    Category.TEXT: "📝 Text Models",
    Category.IMAGE: "🖼 Image Models",
    Category.AUDIO: "🎧 Audio Models",
}


def create_category_keyboard() -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton(label, callback_data=f"category_{category.value}")]
        for category, label in CATEGORY_LABELS.items()
    ]
    return InlineKeyboardMarkup(keyboard)


def create_model_keyboard(category: Category) -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton(model.display_name, callback_data=f"model_{model.key}")]
        for model in models_in(category)
    ]
    return InlineKeyboardMarkup(keyboard)


def create_switch_model_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("🔄 Switch Model", callback_data="switch_model")]])
