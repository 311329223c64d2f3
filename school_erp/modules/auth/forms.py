from wtforms import StringField
from wtforms.validators import DataRequired, Email, Length, Optional

from school_erp.forms import JsonBooleanField, JsonForm


class TokenLoginForm(JsonForm):
    strict = True

    email = StringField(validators=[DataRequired(), Email()])
    password = StringField(validators=[DataRequired(), Length(min=1)])
    trust_code = StringField(validators=[Optional(), Length(max=20)])


class SessionLoginForm(TokenLoginForm):
    remember_me = JsonBooleanField(default=False)
