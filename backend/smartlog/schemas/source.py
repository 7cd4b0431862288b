from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceRemove(BaseModel):
    path: str

    @field_validator("path")
    @classmethod
    def path_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("path is required")
        return v


class SourceCreate(SourceRemove):
    model_config = ConfigDict(populate_by_name=True)

    tag_name: str | None = Field(None, alias="tagName")
    color: str | None = None


class SourceUpdate(SourceCreate):
    pass


class SourceOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    tag_name: str = Field(alias="tagName")
    color: str


class ConfigResponse(BaseModel):
    sources: list[SourceOut]
    file_paths: list[str]
