from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from chalicelib.constants.substitute_keys import from_db, to_db
from chalicelib.utils import db as utils_db, exceptions
from chalicelib.utils.data import substitute_keys
from chalicelib.utils.logger import logger


class EntityBase:
    """
    Base for records of the general table.

    Child classes define pk/sk templates, the fields validation maps and implement
    _get_pk_sk() and _to_dict(). Attribute names are kept in their db form (id_, name_, status_)
    on the instance and translated with substitute_keys on the way to the UI.
    """
    pk = None
    sk = None

    # field -> validator, validators return False for an invalid value
    required_immutable_fields_validation: Dict[str, Callable] = {}
    required_mutable_fields_validation: Dict[str, Callable] = {}
    optional_fields_validation: Dict[str, Callable] = {}
    # fields which are REMOVEd from the record when updated with an empty value
    removable_fields: List[str] = []

    def __init__(self, id_):
        self.id_: str = id_
        self.record_type: str = ''
        self.request_data: Optional[Dict] = None
        self.db_record: Dict = {}

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk

    def _db_key(self) -> Dict:
        pk, sk = self._get_pk_sk()
        return {'partkey': pk, 'sortkey': sk}

    def _get_db_item(self) -> Dict:
        return utils_db.get_db_item(*self._get_pk_sk())

    def _to_dict(self) -> Dict:
        return {
            'id_': self.id_,
            'record_type': self.record_type
        }

    def _init_db_record(self) -> None:
        self.db_record = {
            **self._db_key(),
            'record_type': self.record_type,
            **self._to_dict()
        }
        substitute_keys(dict_to_process=self.db_record, base_keys=to_db)

    @staticmethod
    def raise_validation_error(key):
        message = f'Field {key} is missing or has an invalid value'
        logger.error(f"raise_validation_error ::: {message}")
        raise exceptions.ValidationException(message)

    def _validate_fields(self, fields_validation: Dict[str, Callable], skip_missing: bool) -> None:
        for key, validator_func in fields_validation.items():
            value = self.db_record.get(key)
            if skip_missing and value is None:
                continue
            if validator_func(value) is False:
                self.raise_validation_error(key)

    def _validate_mandatory_fields(self):
        self._validate_fields({**self.required_immutable_fields_validation,
                               **self.required_mutable_fields_validation}, skip_missing=False)

    def _validate_optional_fields(self):
        self._validate_fields(self.optional_fields_validation, skip_missing=True)

    def _get_validated_update_dict(self) -> Dict:
        """
        Only mutable fields make it into the update, unset (None) fields are left as stored.
        Raises ValidationException for the first field with an invalid value, nothing is written then.
        """
        validation_dict = {**self.required_mutable_fields_validation, **self.optional_fields_validation}
        clean_dict = {}
        for key, value in self._to_dict().items():
            if key not in validation_dict or value is None:
                continue
            if value == '' and key in self.removable_fields:
                clean_dict[key] = value
            elif validation_dict[key](value) is True:
                clean_dict[key] = value
            else:
                logger.warning(f'_get_validated_update_dict ::: {key=}, {value=} is not valid')
                self.raise_validation_error(from_db.get(key) or key)
        return clean_dict

    def _create_db_record(self, condition_expression=None) -> None:
        self._init_db_record()
        self._validate_mandatory_fields()
        self._validate_optional_fields()
        utils_db.put_db_record(self.db_record, condition_expression=condition_expression)
        logger.info(f"_create_db_record ::: {self.record_type} {self.id_} created, key={self._db_key()}")

    def _update_fields_whitelist(self) -> List:
        return [*self.required_mutable_fields_validation, *self.optional_fields_validation]

    def _stamp_update(self) -> None:
        self.date_updated = datetime.now().isoformat(timespec="seconds")
        if self.request_data:
            self.updated_by = self.request_data.get('auth_result', {}).get('user_id')

    def _update_db_record(self):
        self._stamp_update()
        update_dict = self._get_validated_update_dict()
        utils_db.update_db_record(
            key=self._db_key(),
            update_body=update_dict,
            allowed_attrs_to_update=self._update_fields_whitelist(),
            allowed_attrs_to_delete=self.removable_fields
        )
        logger.info(f"_update_db_record ::: {self.record_type} {self.id_} updated")

    def _delete_db_record(self):
        utils_db.delete_db_record(self._db_key())
        logger.info(f"_delete_db_record ::: {self.record_type} {self.id_} deleted")

    def _to_ui(self) -> Dict:
        item = self._to_dict()
        substitute_keys(dict_to_process=item, base_keys=from_db)
        return item
