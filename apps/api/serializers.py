from rest_framework import serializers
from .models import GenerationJob
from apps.enhancement.schemas import GenerationRequest, WatermarkSpec, WATERMARK_KINDS, WATERMARK_POSITIONS


class GenerationJobSerializer(serializers.ModelSerializer):
    class Meta:
        model = GenerationJob
        fields = ['id', 'status', 'task_id', 'prompt_used', 'image_urls', 'generated_image_url',
                  'error', 'warnings', 'created_at']


class WatermarkSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=WATERMARK_KINDS, required=False)
    type = serializers.ChoiceField(choices=WATERMARK_KINDS, required=False)
    text = serializers.CharField(required=False, allow_blank=True, max_length=100)
    logoRef = serializers.CharField(required=False, allow_blank=True)
    logoUrl = serializers.CharField(required=False, allow_blank=True)
    position = serializers.ChoiceField(choices=WATERMARK_POSITIONS, required=False)

    def to_spec(self, data):
        if not data:
            return WatermarkSpec()
        return WatermarkSpec(
            kind=data.get('kind') or data.get('type') or 'none',
            text=data.get('text') or None,
            logo_ref=data.get('logoRef') or data.get('logoUrl') or None,
            position=data.get('position') or 'top-right',
        )


class GenerateRequestSerializer(serializers.Serializer):
    """
    Accepts every field name clients send for the same concept and folds them
    into one GenerationRequest, so nothing downstream sees the aliases.
    """
    # Source image: URL or storage path
    sourceImage = serializers.CharField(required=False, allow_blank=True)
    originalImagePath = serializers.CharField(required=False, allow_blank=True)
    imagePath = serializers.CharField(required=False, allow_blank=True)
    imageUrl = serializers.CharField(required=False, allow_blank=True)

    # Enhancements: id list, legacy list of names/objects, or a single one
    enhancementIds = serializers.ListField(child=serializers.CharField(), required=False)
    enhancements = serializers.ListField(child=serializers.JSONField(), required=False)
    enhancement = serializers.JSONField(required=False)

    categoryLabel = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    classification = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    watermark = WatermarkSerializer(required=False, allow_null=True)

    customPose = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    customFurniture = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    customMakeup = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    customHairColor = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    customPrompt = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    debug = serializers.BooleanField(required=False)
    debugMode = serializers.BooleanField(required=False)

    SOURCE_FIELDS = ('sourceImage', 'originalImagePath', 'imagePath', 'imageUrl')

    @staticmethod
    def _enhancement_name(item):
        if isinstance(item, dict):
            item = item.get('id') or item.get('title') or item.get('enhancement_type')
        return str(item).strip() if item else ''

    def _enhancement_ids(self, attrs):
        if attrs.get('enhancementIds'):
            items = attrs['enhancementIds']
        elif attrs.get('enhancements'):
            items = attrs['enhancements']
        elif attrs.get('enhancement'):
            items = [attrs['enhancement']]
        else:
            items = []
        # Ordered set: keep first occurrence, keep caller order
        ids = []
        for item in items:
            name = self._enhancement_name(item)
            if name and name not in ids:
                ids.append(name)
        return ids

    def validate(self, attrs):
        source = next((attrs[f].strip() for f in self.SOURCE_FIELDS if (attrs.get(f) or '').strip()), '')
        if not source:
            raise serializers.ValidationError({'sourceImage': 'A source image URL or storage path is required.'})
        ids = self._enhancement_ids(attrs)
        if not ids:
            raise serializers.ValidationError(
                {'enhancementIds': 'enhancement, enhancements, or enhancementIds is required.'}
            )
        attrs['_source_image'] = source
        attrs['_enhancement_ids'] = ids
        return attrs

    def to_generation_request(self, caller_id=None, caller_email=None):
        data = self.validated_data

        def text(name):
            value = (data.get(name) or '').strip()
            return value or None

        return GenerationRequest(
            source_image=data['_source_image'],
            enhancement_ids=tuple(data['_enhancement_ids']),
            category_label=text('categoryLabel') or text('classification'),
            caller_id=caller_id,
            caller_email=caller_email,
            watermark=WatermarkSerializer().to_spec(data.get('watermark')),
            custom_furniture=text('customFurniture'),
            custom_pose=text('customPose'),
            custom_prompt=text('customPrompt'),
            custom_makeup=text('customMakeup'),
            custom_hair_color=text('customHairColor'),
            debug=bool(data.get('debug') or data.get('debugMode')),
        )
