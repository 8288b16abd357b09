from .user import User
from .organization import Organization, OrganizationMember
from .template import CustomTemplate, TemplateField
from .call import Call, CallStatus
from .transcript import Transcript
from .extracted_field import ExtractedField
from .usage import UsageRecord
from .notification import Notification
# base and mixins are imported by the above as needed
