"""Test validator.py"""
import logging
from typing import Callable

import pytest

from system_image.exceptions import ImageValidationError
from system_image.models import (
    ContainerImage,
    FlatpakImage,
    LayerImage,
    OstreeImage,
    ReproducibleConfig,
    SystemImage,
    ValidationMode,
)
from system_image.validator import (
    check_image,
    check_policy,
    is_sha256_digest,
    validate_system_image,
)

DIGEST = "sha256:" + "a" * 64


def container(name: str = "web", digest: str = DIGEST) -> ContainerImage:
    """Container with the given digest"""
    return ContainerImage(name=name, image="docker.io/nginx", digest=digest)


class TestValidateSystemImage:
    """Test validate_system_image"""

    def test_valid_image(self, make_image: Callable[..., SystemImage]) -> None:
        """A valid image has no violations"""
        assert validate_system_image(make_image()) == []

    @pytest.mark.parametrize(
        ("base", "expected"),
        [
            pytest.param(
                OstreeImage(ref="", commit="c1"),
                ["Base image ref cannot be empty"],
                id="blank ref",
            ),
            pytest.param(
                OstreeImage(ref="horizonos/stable", commit="   "),
                ["Base image commit cannot be empty"],
                id="blank commit",
            ),
            pytest.param(
                OstreeImage(ref=" ", commit=""),
                ["Base image ref cannot be empty", "Base image commit cannot be empty"],
                id="both blank",
            ),
            pytest.param(
                OstreeImage(ref="horizonos/stable", commit="c1", digest="md5:abc"),
                ["Base image has invalid SHA256 digest format"],
                id="malformed base digest",
            ),
        ],
    )
    def test_base(
        self,
        make_image: Callable[..., SystemImage],
        base: OstreeImage,
        expected: list[str],
    ) -> None:
        """Base image rules"""
        assert validate_system_image(make_image(base=base)) == expected

    @pytest.mark.parametrize(
        ("digest", "expected"),
        [
            pytest.param(
                "", ["Container 'web' must have a digest"], id="blank digest"
            ),
            pytest.param(
                "sha256:" + "A" * 64,
                ["Container 'web' has invalid SHA256 digest format"],
                id="uppercase hex",
            ),
            pytest.param(
                "sha256:" + "a" * 63,
                ["Container 'web' has invalid SHA256 digest format"],
                id="too short",
            ),
            pytest.param(
                "sha512:" + "a" * 64,
                ["Container 'web' has invalid SHA256 digest format"],
                id="wrong algorithm",
            ),
            pytest.param(
                "a" * 64,
                ["Container 'web' has invalid SHA256 digest format"],
                id="missing prefix",
            ),
            pytest.param(
                DIGEST + "\n",
                ["Container 'web' has invalid SHA256 digest format"],
                id="trailing newline",
            ),
        ],
    )
    def test_container_digest(
        self,
        make_image: Callable[..., SystemImage],
        digest: str,
        expected: list[str],
    ) -> None:
        """Missing and malformed digests are distinct violations"""
        image = make_image(containers=[container(digest=digest)])
        assert validate_system_image(image) == expected

    def test_flatpak_commit(self, make_image: Callable[..., SystemImage]) -> None:
        """Flatpaks must have a commit"""
        image = make_image(flatpaks=[FlatpakImage(id="org.gimp.GIMP", commit="")])
        assert validate_system_image(image) == [
            "Flatpak 'org.gimp.GIMP' must have a commit"
        ]

    def test_duplicates(self, make_image: Callable[..., SystemImage]) -> None:
        """Container names and Flatpak ids must be unique"""
        image = make_image(
            containers=[container(), container()],
            flatpaks=[
                FlatpakImage(id="org.gimp.GIMP", commit="1"),
                FlatpakImage(id="org.gimp.GIMP", commit="2"),
            ],
        )
        assert validate_system_image(image) == [
            "Container name 'web' is used more than once",
            "Flatpak id 'org.gimp.GIMP' is used more than once",
        ]

    def test_layer_rules(
        self,
        make_image: Callable[..., SystemImage],
        make_layer: Callable[..., LayerImage],
    ) -> None:
        """Unknown layer dependencies and cycles are reported"""
        image = make_image(
            layers=[
                make_layer("a", dependencies=("b",)),
                make_layer("b", dependencies=("a",)),
                make_layer("c", dependencies=("ghost",)),
            ]
        )
        assert validate_system_image(image) == [
            "Layer 'c' depends on unknown layers: ghost",
            "Layer dependency cycle detected: a, b",
        ]

    def test_all_rules_checked(self, make_image: Callable[..., SystemImage]) -> None:
        """Violations do not short-circuit each other"""
        image = make_image(
            base=OstreeImage(ref="", commit=""),
            containers=[container("a", ""), container("b", "sha256:bad")],
            flatpaks=[FlatpakImage(id="org.gimp.GIMP", commit="")],
        )
        assert len(validate_system_image(image)) == 5


@pytest.mark.parametrize(
    ("digest", "expected"),
    [
        pytest.param(DIGEST, True, id="valid"),
        pytest.param("sha256:" + "0123456789abcdef" * 4, True, id="mixed hex"),
        pytest.param(DIGEST + "\n", False, id="trailing newline"),
        pytest.param("", False, id="empty"),
    ],
)
def test_is_sha256_digest(digest: str, expected: bool) -> None:
    """Test is_sha256_digest"""
    assert is_sha256_digest(digest) is expected


class TestCheckPolicy:
    """Test check_policy"""

    def test_pinned_base(self, make_image: Callable[..., SystemImage]) -> None:
        """The base commit must match the pinned one"""
        config = ReproducibleConfig(pinned_base="c2", signature_validation=False)
        assert check_policy(make_image(), config) == [
            "Base commit 'c1' does not match pinned base 'c2'"
        ]

    def test_unsigned(self, make_image: Callable[..., SystemImage]) -> None:
        """Unsigned images are reported unless allowed"""
        errors = check_policy(make_image(), ReproducibleConfig())
        assert errors == [
            "System image is not signed",
            "Base image 'horizonos/stable/x86_64' is not signed",
            "Container 'web' is not signed",
            "Flatpak 'org.mozilla.firefox' is not signed",
        ]
        assert check_policy(make_image(), ReproducibleConfig(allow_unsigned=True)) == []

    def test_layer_digests(
        self,
        make_image: Callable[..., SystemImage],
        make_layer: Callable[..., LayerImage],
    ) -> None:
        """Layer digests and checksums are verified when verify_digests is on"""
        layer = make_layer("dev").model_copy(update={"checksum": ""})
        config = ReproducibleConfig(allow_unsigned=True)
        assert check_policy(make_image(layers=[layer]), config) == [
            "Layer 'dev' must have a checksum"
        ]
        no_verify = ReproducibleConfig(allow_unsigned=True, verify_digests=False)
        assert check_policy(make_image(layers=[layer]), no_verify) == []

    def test_layer_digest_trailing_newline(
        self,
        make_image: Callable[..., SystemImage],
        make_layer: Callable[..., LayerImage],
    ) -> None:
        """A layer digest followed by a newline is malformed"""
        layer = make_layer("dev")
        layer = layer.model_copy(
            update={
                "container_image": layer.container_image.model_copy(
                    update={"digest": DIGEST + "\n"}
                )
            }
        )
        config = ReproducibleConfig(allow_unsigned=True)
        assert check_policy(make_image(layers=[layer]), config) == [
            "Layer 'dev' container has invalid SHA256 digest format"
        ]


class TestCheckImage:
    """Test check_image"""

    @pytest.fixture
    def invalid_image(self, make_image: Callable[..., SystemImage]) -> SystemImage:
        """Image with a blank commit"""
        return make_image(base=OstreeImage(ref="horizonos/stable", commit=""))

    def test_strict(self, invalid_image: SystemImage) -> None:
        """Strict mode raises with every violation"""
        with pytest.raises(ImageValidationError) as exec_info:
            check_image(invalid_image, ValidationMode.STRICT)
        assert exec_info.value.errors == ["Base image commit cannot be empty"]

    def test_warn(
        self, invalid_image: SystemImage, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Warn mode logs and returns the violations"""
        with caplog.at_level(logging.WARNING):
            errors = check_image(invalid_image, ValidationMode.WARN)
        assert errors == ["Base image commit cannot be empty"]
        assert "Base image commit cannot be empty" in caplog.text

    def test_disabled(self, invalid_image: SystemImage) -> None:
        """Disabled mode skips validation"""
        assert check_image(invalid_image, ValidationMode.DISABLED) == []

    def test_strict_valid(self, make_image: Callable[..., SystemImage]) -> None:
        """Strict mode passes valid images"""
        assert check_image(make_image(), ValidationMode.STRICT) == []

    def test_with_policy(self, make_image: Callable[..., SystemImage]) -> None:
        """Policy violations are included when a config is given"""
        with pytest.raises(ImageValidationError) as exec_info:
            check_image(
                make_image(),
                ValidationMode.STRICT,
                ReproducibleConfig(pinned_base="c9", allow_unsigned=True),
            )
        assert exec_info.value.errors == [
            "Base commit 'c1' does not match pinned base 'c9'"
        ]
