import datetime as dt
from dataclasses import dataclass, field
from typing import Optional

import pytest
from pydantic import BaseModel, field_validator

from apicontract.introspection.factory import (
    FIXED_DATETIME,
    AnnotationModelFactory,
    InstanceSynthesizer,
    model_fields,
    zero_instance,
)

from sample_api import Post


@dataclass
class Author:
    email: str
    homepage_url: str = ""


@dataclass
class Article:
    slug: str
    author: Author
    ratings: list[float] = field(default_factory=list)


class Comment(BaseModel):
    body: str
    score: int
    edited_at: Optional[dt.datetime] = None

    @field_validator("body")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("blank")
        return v


class Plain:
    name: str
    count: int = 3


class SelfBuilding:
    def __init__(self, marker):
        self.marker = marker

    @classmethod
    def factory(cls):
        return cls("built")


def test_default_factory_satisfies_protocol():
    assert isinstance(AnnotationModelFactory(), InstanceSynthesizer)


def test_dataclass_sample_values():
    post = AnnotationModelFactory().make(Post)
    assert post.id == 1
    assert post.title == "sample title"
    assert post.published_at == FIXED_DATETIME
    assert post.tags == ["sample tags"]
    assert post.summary == "sample summary"


def test_nested_models_and_named_strings():
    article = AnnotationModelFactory().make(Article)
    assert article.slug == "sample-slug"
    assert article.author.email == "user@example.com"
    assert article.author.homepage_url == "https://example.com"
    assert article.ratings == [1.5]


def test_pydantic_model():
    comment = AnnotationModelFactory().make(Comment)
    assert comment.body == "sample body"
    assert comment.score == 1
    assert comment.edited_at == FIXED_DATETIME


def test_plain_annotated_class():
    plain = AnnotationModelFactory().make(Plain)
    assert plain.name == "sample name"
    assert plain.count == 1


def test_model_factory_method_wins():
    assert AnnotationModelFactory().make(SelfBuilding).marker == "built"


def test_zero_instance_uses_defaults():
    post = zero_instance(Post)
    assert post.id == 0
    assert post.title == ""
    assert post.tags == []
    assert post.summary is None

    article = zero_instance(Article)
    assert article.author is None
    assert article.ratings == []


def test_zero_instance_skips_pydantic_validation():
    comment = zero_instance(Comment)
    assert comment.body == ""
    assert comment.edited_at is None


def test_zero_instance_propagates_constructor_errors():
    class NeedsArgs:
        value: int

        def __init__(self, value):
            self.value = value

    with pytest.raises(TypeError):
        zero_instance(NeedsArgs)


def test_model_fields():
    assert model_fields(Post)["summary"][1] is True
    assert model_fields(Post)["id"][1] is False
    assert model_fields(Comment)["edited_at"][1] is True
    assert model_fields(Plain) == {"name": (str, False), "count": (int, True)}
