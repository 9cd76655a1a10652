from typing import Tuple, Dict, List, Any, Optional

from chalicelib.constants.substitute_keys import from_db, to_db
from chalicelib.utils import db as utils_db, exceptions
from chalicelib.utils.data import substitute_keys, cleanup_dict, now_iso
from chalicelib.utils.logger import logger


class EntityBase:
    pk = None
    sk = None
    record_type = ''
    not_found_exception = exceptions.RecordNotFound

    required_immutable_fields_validation = {}
    required_mutable_fields_validation = {}
    optional_fields_validation = {}

    def __init__(self, id_, **kwargs):
        self.id_: str = id_
        self.request_data: Any[Dict, None] = kwargs.get('request_data')
        self.db_record: Dict = {}

    @property
    def admin_id(self) -> Optional[str]:
        return (self.request_data or {}).get('auth_result', {}).get('user_id')

    def _get_pk_sk(self) -> Tuple[str, str]:
        """
        Should be re-implemented in each child class
        :return:
        partkey, sortkey of db item for child
        """
        return self.pk, self.sk

    def _get_db_item(self) -> Dict:
        try:
            return utils_db.get_db_item(*self._get_pk_sk())
        except exceptions.RecordNotFound:
            raise self.not_found_exception(f'{self.record_type} {self.id_} not found')

    @classmethod
    def init_by_id(cls, id_, request_data=None):
        c = cls(id_=id_)
        c.__init__(**{**c._get_db_item(), 'request_data': request_data})
        return c

    def _to_dict(self) -> Dict:
        """
        Should be re-implemented in each child class
        :return:
        dict of item's attributes
        """
        return {
            'id_': self.id_
        }

    def _init_db_record(self) -> None:
        """
        New DB record initialization, None values are not stored
        :return:
        None
        """
        pk, sk = self._get_pk_sk()
        self.db_record = cleanup_dict({
            'partkey': pk,
            'sortkey': sk,
            'record_type': self.record_type,
            **self._to_dict()
        }, [None])

    @staticmethod
    def raise_validation_error(key, value=None, message=None):
        message = message or f'Validation error occurred while validating field={key}, value={value}'
        logger.error(f"raise_validation_error ::: {message}")
        raise exceptions.ValidationException(message)

    def _validate_mandatory_fields(self):
        """
        Validates mandatory fields if all fields have correct type to put to db
        Raise ValidationException in case if a field is not valid
        :return:
        None
        """
        record = self.db_record or self._to_dict()
        for key, validator_func in {
            **self.required_immutable_fields_validation,
            **self.required_mutable_fields_validation
        }.items():
            if validator_func(record.get(key)) is False:
                self.raise_validation_error(key, record.get(key))

    def _validate_optional_fields(self):
        """
        Validates optional fields if all fields have correct type to put to db
        Raise ValidationException in case if a field is not valid
        :return:
        None
        """
        record = self.db_record or self._to_dict()
        for key, validator_func in self.optional_fields_validation.items():
            if record.get(key) is not None and validator_func(record.get(key)) is False:
                self.raise_validation_error(key, record.get(key))

    def _validate_business_rules(self):
        """
        Cross-field rules of the entity, re-implemented in child classes if needed
        Raise ValidationException in case if a rule is broken
        """
        pass

    def validate(self):
        self._validate_mandatory_fields()
        self._validate_optional_fields()
        self._validate_business_rules()

    def _create_db_record(self) -> None:
        """
        Creates entity db record
        :return:
        None
        """
        self._init_db_record()
        self.validate()
        utils_db.put_db_record(self.db_record)
        logger.info(f"_create_db_record ::: {self.record_type=} {self.id_=} {self.db_record.get('partkey')=} "
                    f"{self.db_record.get('sortkey')=} successfully created")

    def _update_fields_whitelist(self) -> List:
        return [*self.required_mutable_fields_validation.keys(), *self.optional_fields_validation.keys()]

    def _update_fields_deletable(self) -> List:
        return [key for key in self.optional_fields_validation.keys() if key != 'updated_by']

    def apply_changes(self, changes: Dict) -> List[str]:
        """
        Applies changes from the request body to the entity.
        Keys which are not allowed to be updated are ignored with warning.
        :return:
        list of changed fields
        """
        substitute_keys(dict_to_process=changes, base_keys=to_db)
        whitelist = self._update_fields_whitelist()
        allowed_changes = {}
        for key, value in changes.items():
            if key in whitelist and key not in ('date_updated', 'updated_by'):
                allowed_changes[key] = value
            else:
                logger.warning(f'apply_changes ::: {key=}, {value=} is not allowed to update, skipping..')
        self.__init__(**{**self._to_dict(), **allowed_changes, 'request_data': self.request_data})
        return list(allowed_changes.keys())

    def _update_db_record(self, fields: Optional[List[str]] = None, condition_expression=None) -> Dict:
        """
        Validates the whole entity and updates fields of db record
        :param fields: fields to update, all mutable fields if None
        :param condition_expression: boto3 condition which must be met by the stored record
        :return:
        updated db record
        """
        pk, sk = self._get_pk_sk()
        self.date_updated = now_iso()
        if self.admin_id is not None:
            self.updated_by = self.admin_id
        self.db_record = {}
        self.validate()
        update_dict = self._to_dict()
        fields_to_update = [*(fields if fields is not None else self._update_fields_whitelist()),
                            'date_updated', 'updated_by']
        update_dict = {key: value for key, value in update_dict.items() if key in fields_to_update}
        substitute_keys(dict_to_process=update_dict, base_keys=to_db)
        updated_record = utils_db.update_db_record(
            key={'partkey': pk, 'sortkey': sk},
            update_body=update_dict,
            allowed_attrs_to_update=self._update_fields_whitelist(),
            allowed_attrs_to_delete=self._update_fields_deletable(),
            condition_expression=condition_expression
        )
        logger.info(f"_update_db_record ::: {self.record_type=} "
                    f"{self.id_=} {pk=} {sk=} {fields_to_update=} successfully updated")
        return updated_record

    def _delete_db_record(self) -> None:
        pk, sk = self._get_pk_sk()
        utils_db.delete_db_record(pk, sk)
        logger.info(f"_delete_db_record ::: {self.record_type=} {self.id_=} {pk=} {sk=} successfully deleted")

    def _to_ui(self) -> Dict:
        item = self._to_dict()
        substitute_keys(dict_to_process=item, base_keys=from_db)
        return item

    def to_ui(self) -> Dict:
        return self._to_ui()
