from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from variable_editor.domain.batch import RowFailure

class BatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Delimited text, first line is the header; column names become override keys
    csv: str
    # Render URL whose query values name the columns to substitute; defaults to
    # RENDER_BASE_URL/generate with this request's own query string
    url_template: Optional[str] = Field(default=None, alias="urlTemplate")
    delimiter: str = ","

class BatchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_urls: List[str] = Field(default_factory=list, alias="imageUrls")
    errors: List[RowFailure] = Field(default_factory=list)
