"""
Tests for the model catalog lookups.
"""

import pytest
from hyperbolic_bot.catalog import MODELS, Category, get_model, lookup_category, models_in


class TestLookupCategory:

    @pytest.mark.parametrize("model", MODELS, ids=lambda m: m.key)
    def test_every_key_maps_to_its_category(self, model):
        assert lookup_category(model.key) == model.category
        assert model in models_in(model.category)

    @pytest.mark.parametrize("key", ["gpt4", "", None, "model_flux", "FLUX"])
    def test_unknown_key_is_not_found(self, key):
        assert lookup_category(key) is None
        assert get_model(key) is None


class TestModelsIn:

    def test_text_models_in_catalog_order(self):
        keys = [m.key for m in models_in(Category.TEXT)]
        assert keys == ["meta_llama", "deepseek", "hermes", "qwen"]

    def test_image_and_audio_models(self):
        assert [m.key for m in models_in(Category.IMAGE)] == ["flux", "sd2"]
        assert [m.key for m in models_in(Category.AUDIO)] == ["melo_tts"]

    def test_categories_partition_the_catalog(self):
        total = sum(len(models_in(c)) for c in Category)
        assert total == len(MODELS)

    def test_keys_are_unique(self):
        keys = [m.key for m in MODELS]
        assert len(keys) == len(set(keys))

    def test_text_models_carry_generation_parameters(self):
        for model in models_in(Category.TEXT):
            assert model.api_model_name
            assert model.max_tokens > 0
            assert 0 <= model.temperature <= 1
            assert model.top_p == 0.9
