import pytest
from pydantic import ValidationError

from forgery_guard.security.options import ProtectionConfig, ProtectionOptions


class TestProtectionConfig:
    def test_defaults(self):
        config = ProtectionConfig()
        assert config.secret is None
        assert config.digest == "SHA1"
        assert config.only is None
        assert config.except_ == frozenset()
        assert config.token_param == "authenticity_token"
        assert not config.has_secret

    def test_is_immutable(self):
        config = ProtectionConfig(secret="s3cr3t")
        with pytest.raises(ValidationError):
            config.secret = "other"

    @pytest.mark.parametrize("digest", ["NOT-A-DIGEST", "shake_128", "shake_256"])
    def test_unknown_digest_rejected(self, digest):
        with pytest.raises(ValidationError):
            ProtectionConfig(digest=digest)

    def test_digest_name_is_case_insensitive(self):
        assert ProtectionConfig(digest="sha256").digest == "sha256"
        assert ProtectionConfig(digest="SHA256").digest == "SHA256"

    def test_empty_token_param_rejected(self):
        with pytest.raises(ValidationError):
            ProtectionConfig(token_param="")

    def test_covers_everything_by_default(self):
        config = ProtectionConfig()
        assert config.covers("articles.create")
        assert config.covers("index")

    def test_covers_nothing_without_endpoint(self):
        assert not ProtectionConfig().covers(None)

    def test_only_restricts(self):
        config = ProtectionConfig(only=frozenset({"create"}))
        assert config.covers("articles.create")
        assert not config.covers("articles.update")

    def test_except_removes(self):
        config = ProtectionConfig(except_=frozenset({"preview"}))
        assert not config.covers("articles.preview")
        assert config.covers("articles.create")

    def test_only_then_except(self):
        config = ProtectionConfig(only=frozenset({"create", "update"}), except_=frozenset({"update"}))
        assert config.covers("articles.create")
        assert not config.covers("articles.update")
        assert not config.covers("articles.destroy")

    def test_fully_qualified_action_names(self):
        config = ProtectionConfig(except_=frozenset({"articles.preview"}))
        assert not config.covers("articles.preview")
        assert config.covers("drafts.preview")

    def test_empty_only_covers_nothing(self):
        config = ProtectionConfig(only=frozenset())
        assert not config.covers("articles.create")


class TestProtectionOptions:
    def test_freeze_applies_defaults(self):
        config = ProtectionOptions().freeze(digest="SHA256", token_param="_csrf")
        assert config.digest == "SHA256"
        assert config.token_param == "_csrf"

    def test_explicit_values_beat_defaults(self):
        options = ProtectionOptions()
        options.update(digest="SHA512", token_param="token")
        config = options.freeze(digest="SHA256", token_param="_csrf")
        assert config.digest == "SHA512"
        assert config.token_param == "token"

    def test_later_calls_add_to_options(self):
        options = ProtectionOptions()
        options.update(secret="first", only=["create"])
        options.update(digest="SHA256", only=["update"], except_="preview")
        config = options.freeze()

        assert config.secret == "first"
        assert config.digest == "SHA256"
        assert config.only == frozenset({"create", "update"})
        assert config.except_ == frozenset({"preview"})

    def test_later_secret_overwrites(self):
        options = ProtectionOptions()
        options.update(secret="first")
        options.update(secret="second")
        assert options.freeze().secret == "second"

    def test_omitted_options_leave_previous_values(self):
        options = ProtectionOptions()
        options.update(secret="s3cr3t", digest="SHA256")
        options.update(except_=["index"])
        config = options.freeze()
        assert config.secret == "s3cr3t"
        assert config.digest == "SHA256"

    def test_single_string_action(self):
        options = ProtectionOptions()
        options.update(only="create")
        assert options.freeze().only == frozenset({"create"})

    def test_freeze_returns_independent_snapshots(self):
        options = ProtectionOptions()
        first = options.freeze()
        options.update(secret="later")
        assert first.secret is None
        assert options.freeze().secret == "later"

    def test_copy_is_independent(self):
        options = ProtectionOptions()
        options.update(secret="s3cr3t", only=["create"])
        clone = options.copy()
        clone.update(digest="SHA256", only=["update"])

        assert options.freeze().digest == "SHA1"
        assert options.freeze().only == frozenset({"create"})
        assert clone.freeze().secret == "s3cr3t"
        assert clone.freeze().only == frozenset({"create", "update"})
